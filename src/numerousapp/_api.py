"""
Static per-operation metadata for the NumerousApp API.

Each resource (a metric, its events collection, a user, ...) is described by
an APIDescriptor: a path template, default substitutions and the details
that differ per HTTP method (success codes, pagination field names, path
extensions). `APIDescriptor.context()` turns one of those into the immutable
RequestContext consumed by the request executor and the paginated iterator.

Example:
    >>> ctx = METRIC_APIS["events"].context("GET", metricId="5432")
    >>> ctx.base_path
    '/v1/metrics/5432/events'
    >>> (ctx.next_field, ctx.list_field, ctx.dup_filter)
    ('nextURL', 'events', 'id')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class OperationInfo:
    """
    Method-specific details of one API operation.

    Attributes:
        http_method: HTTP verb, when the operation key is not itself a verb
            (e.g. the "photo" pseudo-operation of a user is a POST).
        success_codes: Status codes meaning "OK" for this operation.
        next_field: Response field holding the next-page URL (collections only).
        list_field: Response field holding the page's item list (collections only).
        dup_filter: Item field used for page-boundary duplicate filtering.
        append_path: Appended to the descriptor's path.
        path: Replaces the descriptor's path entirely.
    """

    http_method: str | None = None
    success_codes: tuple[int, ...] = (200,)
    next_field: str | None = None
    list_field: str | None = None
    dup_filter: str | None = None
    append_path: str = ""
    path: str | None = None


@dataclass(frozen=True)
class RequestContext:
    """
    Everything the executor needs to issue one API call.

    Built fresh for each call; never mutated.
    """

    base_path: str
    http_method: str = "GET"
    success_codes: frozenset[int] = frozenset({200})
    next_field: str | None = None
    list_field: str | None = None
    dup_filter: str | None = None

    def __post_init__(self) -> None:
        assert self.base_path, "base_path cannot be empty."
        assert self.http_method in ("GET", "POST", "PUT", "DELETE"), \
            f"Unsupported HTTP method: {self.http_method}"
        assert self.success_codes, "success_codes cannot be empty."

    @property
    def is_collection(self) -> bool:
        return self.list_field is not None


@dataclass(frozen=True)
class APIDescriptor:
    """
    Path template plus per-operation info for one API resource.

    Attributes:
        path: Path template with {name} placeholders.
        defaults: Substitutions used when the caller passes None.
        operations: Per-operation info keyed by HTTP verb or pseudo-operation name.
            Verbs without an entry use the standard parameters.
    """

    path: str
    defaults: dict[str, Any] = field(default_factory=dict)
    operations: dict[str, OperationInfo] = field(default_factory=dict)

    def context(self, op: str, **substitutions: Any) -> RequestContext:
        """
        Build the RequestContext for `op`.

        Args:
            op: HTTP verb ("GET", "POST"...) or a pseudo-operation name.
            **substitutions: Path placeholder values. None values defer to
                the descriptor's defaults.

        Raises:
            KeyError: If a placeholder has no value (a caller bug).
        """
        info = self.operations.get(op, OperationInfo())
        values = dict(self.defaults)
        values.update({k: v for k, v in substitutions.items() if v is not None})

        template = (info.path or self.path) + info.append_path
        return RequestContext(
            base_path=template.format_map(values),
            http_method=info.http_method or op,
            success_codes=frozenset(info.success_codes),
            next_field=info.next_field,
            list_field=info.list_field,
            dup_filter=info.dup_filter,
        )


# =============================================================================
# Server-level APIs
# =============================================================================

SERVER_APIS: dict[str, APIDescriptor] = {
    "create": APIDescriptor(
        path="/v1/metrics",
        operations={"POST": OperationInfo(success_codes=(201,))},
    ),
    "metricsCollection": APIDescriptor(
        path="/v2/users/{userId}/metrics",
        defaults={"userId": "me"},
        operations={"GET": OperationInfo(next_field="nextURL", list_field="metrics")},
    ),
    "subscriptions": APIDescriptor(
        path="/v2/users/{userId}/subscriptions",
        defaults={"userId": "me"},
        operations={"GET": OperationInfo(next_field="nextURL", list_field="subscriptions")},
    ),
    "user": APIDescriptor(
        path="/v1/users/{userId}",
        defaults={"userId": "me"},
        operations={
            "photo": OperationInfo(http_method="POST", success_codes=(201,), append_path="/photo"),
        },
    ),
    "popular": APIDescriptor(
        path="/v1/metrics/popular?count={count}",
        defaults={"count": 10},
    ),
}


# =============================================================================
# Metric-level APIs
# =============================================================================

METRIC_APIS: dict[str, APIDescriptor] = {
    "metric": APIDescriptor(
        path="/v1/metrics/{metricId}",
        operations={"DELETE": OperationInfo(success_codes=(204,))},
    ),
    "events": APIDescriptor(
        path="/v1/metrics/{metricId}/events",
        operations={
            "GET": OperationInfo(next_field="nextURL", list_field="events", dup_filter="id"),
            "POST": OperationInfo(success_codes=(201,)),
        },
    ),
    "event": APIDescriptor(
        path="/v1/metrics/{metricId}/events/{eventId}",
        operations={"DELETE": OperationInfo(success_codes=(204,))},
    ),
    "stream": APIDescriptor(
        path="/v2/metrics/{metricId}/stream",
        operations={"GET": OperationInfo(next_field="next", list_field="items", dup_filter="id")},
    ),
    "interactions": APIDescriptor(
        path="/v2/metrics/{metricId}/interactions",
        operations={
            "GET": OperationInfo(next_field="nextURL", list_field="interactions", dup_filter="id"),
            "POST": OperationInfo(success_codes=(201,)),
        },
    ),
    "interaction": APIDescriptor(
        path="/v2/metrics/{metricId}/interactions/{item}",
        operations={"DELETE": OperationInfo(success_codes=(204,))},
    ),
    "subscriptions": APIDescriptor(
        path="/v2/metrics/{metricId}/subscriptions",
        operations={"GET": OperationInfo(next_field="nextURL", list_field="subscriptions")},
    ),
    "subscription": APIDescriptor(
        path="/v1/metrics/{metricId}/subscriptions/{userId}",
        defaults={"userId": "me"},
        operations={"PUT": OperationInfo(success_codes=(200, 201))},
    ),
    "photo": APIDescriptor(
        path="/v1/metrics/{metricId}/photo",
        operations={
            "POST": OperationInfo(success_codes=(201,)),
            "DELETE": OperationInfo(success_codes=(204,)),
        },
    ),
}
