"""Typed failures raised by the metrics HTTP adapter.

The poller branches on exactly two of these: ``FetchHTTPError`` for non-200
answers and ``FetchTransportError`` for everything that kept a status from
arriving.
"""

from __future__ import annotations

from typing import Any, Optional


class ApiError(RuntimeError):
    """Base class for metrics endpoint failures."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        payload: Any = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload
        self.context = context


class FetchHTTPError(ApiError):
    """The hub answered with a status other than 200."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        payload: Any = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            status=status,
            payload=payload,
            context=context,
        )


class FetchTransportError(ApiError):
    """Transport level timeout, refused connection or DNS failure."""

    def __init__(
        self,
        message: str,
        *,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(message, context=context)


def parse_error_payload(resp: Any) -> Any:
    """Best-effort extraction of an error body snippet without raising."""
    snippet = getattr(resp, "text", "")
    if not snippet:
        return None
    return snippet.strip()[:200] or None


def build_error_message(ctx: str, status: int, payload: Any) -> str:
    if isinstance(payload, str) and payload:
        first_line = payload.splitlines()[0].strip()
        if first_line:
            return f"{ctx}: {first_line} (HTTP {status})"
    return f"{ctx}: HTTP {status}"


__all__ = [
    "ApiError",
    "FetchHTTPError",
    "FetchTransportError",
    "build_error_message",
    "parse_error_payload",
]
