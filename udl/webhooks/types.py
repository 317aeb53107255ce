"""Types shared by webhook handlers, the registry and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from udl.nodes import NodeActions, NodeStore


@dataclass
class WebhookHandlerContext:
    """Per-request context handed to a webhook handler.

    ``body`` is the parsed JSON payload when the request declared a JSON
    content type, otherwise ``None``. ``raw_body`` is always the exact bytes
    received, for handlers that verify signatures themselves.
    """

    store: NodeStore
    actions: NodeActions
    raw_body: bytes
    body: Any = None


class WebhookResponse:
    """Response slot a webhook handler writes into.

    A handler commits exactly one response with :meth:`json` or
    :meth:`send`. Once committed (``headers_sent``) the HTTP layer returns it
    as-is, even if the handler raises afterwards.
    """

    def __init__(self) -> None:
        self._response: Optional[Response] = None

    @property
    def headers_sent(self) -> bool:
        return self._response is not None

    @property
    def status_code(self) -> Optional[int]:
        return self._response.status_code if self._response is not None else None

    def json(
        self,
        status_code: int,
        content: Any,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._commit(JSONResponse(content=content, status_code=status_code, headers=headers))

    def send(
        self,
        status_code: int,
        content: Union[bytes, str] = b"",
        headers: Optional[Mapping[str, str]] = None,
        media_type: Optional[str] = None,
    ) -> None:
        self._commit(
            Response(content=content, status_code=status_code, headers=headers, media_type=media_type)
        )

    def get_response(self) -> Optional[Response]:
        return self._response

    def _commit(self, response: Response) -> None:
        if self._response is not None:
            raise RuntimeError("Webhook response has already been sent")
        self._response = response


WebhookHandlerFn = Callable[[Request, WebhookResponse, WebhookHandlerContext], Awaitable[None]]

SignatureVerifier = Callable[[bytes, Mapping[str, str]], Union[bool, Awaitable[bool]]]


@dataclass
class WebhookRegistration:
    """A plugin's webhook endpoint: ``/_webhooks/{plugin}/{path}``."""

    path: str
    handler: WebhookHandlerFn
    verify_signature: Optional[SignatureVerifier] = None
    description: str = ""


def lower_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy *headers* into a plain dict with lower-cased names."""
    return {k.lower(): v for k, v in headers.items()}
