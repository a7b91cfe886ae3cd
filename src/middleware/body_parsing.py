"""
Request body middleware: size limit and urlencoded forms
"""

import json
import logging

from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from config import settings
from utils.error_handling import app_error_handler
from utils.errors import PayloadTooLargeError

logger = logging.getLogger(__name__)

FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


def media_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";")[0].strip().lower()


def replay_receive(body: bytes, receive: Receive) -> Receive:
    """A receive callable that hands out an already-buffered body once"""
    sent = False

    async def replay():
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class BodyParsingMiddleware:
    """
    Buffers request bodies before routing.

    Bodies over MAX_BODY_BYTES are answered with 413 without reaching a route.
    urlencoded form bodies are re-encoded as JSON so the same pydantic body
    models serve both encodings. Everything else passes through untouched.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        limit = settings.MAX_BODY_BYTES

        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            await self._reject(request, scope, receive, send)
            return

        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body += message.get("body", b"")
            if len(body) > limit:
                await self._reject(request, scope, receive, send)
                return
            more_body = message.get("more_body", False)

        if media_type(request) == FORM_MEDIA_TYPE:
            form = await Request(scope, replay_receive(body, receive)).form()
            body = json.dumps({key: value for key, value in form.items()}).encode("utf-8")
            headers = [
                (name, value) for name, value in scope["headers"]
                if name not in (b"content-type", b"content-length")
            ]
            headers.append((b"content-type", b"application/json"))
            headers.append((b"content-length", str(len(body)).encode("latin-1")))
            scope = dict(scope, headers=headers)
            logger.debug(f"Decoded form body for {request.method} {request.url.path}")

        await self.app(scope, replay_receive(body, receive), send)

    @staticmethod
    async def _reject(request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        response = await app_error_handler(request, PayloadTooLargeError("Request body exceeds size limit"))
        await response(scope, receive, send)
