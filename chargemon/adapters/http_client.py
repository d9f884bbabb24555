"""HTTP transport for polling the hub's metrics endpoint.

This module provides a thin wrapper around ``requests.Session`` so the poller
can share timeout policy, request headers and a bounded body read.

Dependencies:
    - ``requests`` for network I/O.
    - ``chargemon.adapters.api_errors`` for typed transport/HTTP failures.

Call context:
    - Constructed lazily by ``TelemetryPoller`` through a session factory and
      discarded/rebuilt after repeated failures.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from typing import Dict, Optional

import requests
from requests import exceptions as req_exc

from chargemon.adapters.api_errors import (
    FetchHTTPError,
    FetchTransportError,
    build_error_message,
    parse_error_payload,
)
from chargemon.domain.ports import MetricsSessionPort

DEFAULT_USER_AGENT = "chargemon-http-client"


@dataclass
class HttpConfig:
    """Timeout and size configuration for metrics fetches.

    Attributes:
        request_timeout_s: Connect/read timeout for one GET, in seconds.
        max_body_bytes: Body bytes kept; anything beyond is dropped.
        user_agent: ``User-Agent`` header value.
    """
    request_timeout_s: float = 5.0
    max_body_bytes: int = 64 * 1024
    user_agent: str = DEFAULT_USER_AGENT


class MetricsSession(MetricsSessionPort):
    """Requests wrapper that fetches one exposition-format document.

    There is no retry loop here: the poller owns retry and rebuild policy so
    that exactly one request is in flight per poll.
    """

    def __init__(self, cfg: Optional[HttpConfig] = None) -> None:
        """Create a session with persistent connection pooling.

        Args:
            cfg: Shared timeout and size settings.
        """
        self.cfg = cfg or HttpConfig()
        self.session = requests.Session()
        self.truncated = False

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "text/plain", "User-Agent": self.cfg.user_agent}

    def fetch(self, url: str) -> str:
        """GET ``url`` and return its body as text.

        Args:
            url: Absolute metrics URL, e.g. ``http://192.168.1.19/metrics``.

        Returns:
            Response body, truncated to ``max_body_bytes``.

        Raises:
            FetchTransportError: Timeout, refused connection or DNS failure.
            FetchHTTPError: The server answered with a non-200 status.
        """
        context = f"GET {url}"
        try:
            resp = self.session.get(
                url,
                headers=self._headers(),
                timeout=self.cfg.request_timeout_s,
                stream=True,
                allow_redirects=False,
            )
        except (req_exc.Timeout, req_exc.ConnectionError) as exc:
            raise FetchTransportError(f"Cannot reach {url}: {type(exc).__name__}", context=context) from exc
        except req_exc.RequestException as exc:
            raise FetchTransportError(f"{context}: {exc}", context=context) from exc

        try:
            if resp.status_code != 200:
                payload = parse_error_payload(resp)
                raise FetchHTTPError(
                    build_error_message(context, resp.status_code, payload),
                    status=resp.status_code,
                    payload=payload,
                    context=context,
                )
            return self._read_bounded(resp, context)
        finally:
            resp.close()

    def _read_bounded(self, resp: requests.Response, context: str) -> str:
        limit = self.cfg.max_body_bytes
        chunks = []
        size = 0
        self.truncated = False
        try:
            for chunk in resp.iter_content(chunk_size=4096):
                if not chunk:
                    continue
                room = limit - size
                if len(chunk) > room:
                    chunks.append(chunk[:room])
                    self.truncated = True
                    break
                chunks.append(chunk)
                size += len(chunk)
        except (req_exc.Timeout, req_exc.ConnectionError, req_exc.ChunkedEncodingError) as exc:
            raise FetchTransportError(f"{context}: body read failed", context=context) from exc
        return b"".join(chunks).decode(self._encoding(resp), errors="replace")

    @staticmethod
    def _encoding(resp: requests.Response) -> str:
        # charset comes from the Content-Type header; unknown names fall back to utf-8
        name = resp.encoding or "utf-8"
        try:
            codecs.lookup(name)
        except LookupError:
            return "utf-8"
        return name

    def close(self) -> None:
        self.session.close()


__all__ = ["HttpConfig", "MetricsSession"]
