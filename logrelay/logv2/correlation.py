"""
Request correlation for structured logs.

Two sources:
- `X-Cloud-Trace-Context: TRACE_ID/SPAN_ID;o=FLAG` (set by Cloud Run / GFE)
- an ordered list of execution-id header names (first non-empty wins)

A correlation can also be bound for a scope via `bind_correlation`, mirroring
the request-id contextvar pattern used by HTTP middleware.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Sequence


TRACE_HEADER = "X-Cloud-Trace-Context"

DEFAULT_EXECUTION_ID_HEADERS: tuple[str, ...] = (
    "Function-Execution-Id",
    "X-Execution-Id",
    "X-Request-Id",
)


def _clean_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).replace("\n", " ").replace("\r", " ").strip()
    if not s:
        return None
    # Keep bounded to avoid log bloat / header abuse.
    return s[:128]


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    execution_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "trace_id", _clean_id(self.trace_id))
        object.__setattr__(self, "span_id", _clean_id(self.span_id))
        object.__setattr__(self, "execution_id", _clean_id(self.execution_id))

    @property
    def is_empty(self) -> bool:
        return not (self.trace_id or self.span_id or self.execution_id)


EMPTY = CorrelationContext()

_CORRELATION: ContextVar[CorrelationContext] = ContextVar("logv2_correlation", default=EMPTY)


def parse_trace_header(value: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """
    Parse `TRACE_ID/SPAN_ID;o=FLAG` into (trace_id, span_id).

    SPAN_ID and the sampling flag are optional. A missing/empty header is not
    an error: both parts come back as None.
    """
    raw = (value or "").strip()
    if not raw:
        return None, None
    trace, sep, rest = raw.partition("/")
    if not sep:
        # "TRACE;o=1" (no span)
        trace = trace.split(";", 1)[0]
        return _clean_id(trace), None
    span = rest.split(";", 1)[0]
    return _clean_id(trace), _clean_id(span)


def _header_get(headers: Mapping[str, Any], name: str) -> Optional[str]:
    # tolerate case differences
    target = name.lower()
    for k, v in headers.items():
        if str(k).lower() == target:
            return None if v is None else str(v)
    return None


def first_header(headers: Optional[Mapping[str, Any]], names: Sequence[str]) -> Optional[str]:
    """
    Return the first non-empty header among `names`, checked in declared order.
    """
    if not headers:
        return None
    for name in names:
        v = _clean_id(_header_get(headers, name))
        if v:
            return v
    return None


def headers_of(request: Any) -> Optional[Mapping[str, Any]]:
    """
    Accept either a headers mapping or a request-like object exposing `.headers`.
    """
    if request is None:
        return None
    if isinstance(request, Mapping):
        return request
    headers = getattr(request, "headers", None)
    if headers is None:
        return None
    if isinstance(headers, Mapping):
        return headers
    try:
        return dict(headers)
    except Exception:
        return None


def extract_correlation(
    request: Any,
    execution_id_headers: Sequence[str] = DEFAULT_EXECUTION_ID_HEADERS,
) -> CorrelationContext:
    headers = headers_of(request)
    if not headers:
        return EMPTY
    trace_id, span_id = parse_trace_header(_header_get(headers, TRACE_HEADER))
    return CorrelationContext(
        trace_id=trace_id,
        span_id=span_id,
        execution_id=first_header(headers, execution_id_headers),
    )


def current_correlation() -> CorrelationContext:
    return _CORRELATION.get()


@contextmanager
def bind_correlation(ctx: CorrelationContext) -> Iterator[CorrelationContext]:
    """
    Bind `ctx` as the ambient correlation for the scope lifetime.
    """
    token = _CORRELATION.set(ctx)
    try:
        yield ctx
    finally:
        _CORRELATION.reset(token)
