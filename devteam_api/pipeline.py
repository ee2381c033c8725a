"""
Ordered request pipeline.

Each stage inspects the request and returns an outcome:

    Continue()          pass control to the next stage
    Respond(response)   halt and send this response
    Fail(error)         halt and hand the error to the error responder

PipelineMiddleware runs the stages in order and hands the request to route
dispatch when every stage continued. Stages marked ``always`` (headers,
access log) also run after an earlier stage halted.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence, Union
from urllib.parse import parse_qsl

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from .docs import openapi_url, render_docs_document, render_docs_page
from .models import ErrorResponse, utc_timestamp

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("devteam_api.access")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}

JSON_MEDIA_TYPES = ("application/json",)
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


class BodyDecodeError(ValueError):
    """Request body could not be decoded."""


class PayloadTooLargeError(BodyDecodeError):
    """Request body exceeds the configured limit."""


class MalformedBodyError(BodyDecodeError):
    """Request body does not parse under its declared content type."""


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class Respond:
    response: Response


@dataclass(frozen=True)
class Fail:
    error: Exception


Outcome = Union[Continue, Respond, Fail]

CONTINUE = Continue()


@dataclass
class RequestContext:
    """Per-request state shared between stages."""

    request: Request
    response_headers: dict[str, str] = field(default_factory=dict)

    def apply_headers(self, response: Response) -> Response:
        for name, value in self.response_headers.items():
            response.headers[name] = value
        return response


class PipelineStage(ABC):
    """One interceptor in the request pipeline."""

    name: str = "stage"
    always: bool = False

    @abstractmethod
    async def process(self, context: RequestContext) -> Outcome:
        """Inspect the request and decide whether the pipeline continues."""


def render_error(exc: BaseException, dev_mode: bool) -> ErrorResponse:
    """Build the 500 envelope; the exception message is exposed only in development."""
    return ErrorResponse(
        error="Internal server error",
        details=str(exc) if dev_mode else None,
    )


def error_response(request: Request, exc: BaseException, dev_mode: bool) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    envelope = render_error(exc, dev_mode)
    return JSONResponse(status_code=500, content=envelope.model_dump(exclude_none=True))


def original_url(request: Request) -> str:
    """Request path plus query string, as sent by the client."""
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def not_found_response(request: Request) -> JSONResponse:
    envelope = ErrorResponse(error=f"Route {original_url(request)} not found")
    return JSONResponse(status_code=404, content=envelope.model_dump(exclude_none=True))


def _media_type(request: Request) -> str:
    content_type = request.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


class BodyDecodingStage(PipelineStage):
    """Decode JSON and URL-encoded bodies into ``request.state.body``."""

    name = "body"

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes

    def _is_json(self, media_type: str) -> bool:
        return media_type in JSON_MEDIA_TYPES or media_type.endswith("+json")

    async def process(self, context: RequestContext) -> Outcome:
        request = context.request
        media_type = _media_type(request)
        if not (self._is_json(media_type) or media_type == FORM_MEDIA_TYPE):
            return CONTINUE

        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            return Fail(PayloadTooLargeError(
                f"request entity too large: {declared} bytes exceeds {self.max_bytes}"
            ))

        chunks = []
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
            if received > self.max_bytes:
                return Fail(PayloadTooLargeError(
                    f"request entity too large: more than {self.max_bytes} bytes"
                ))
            chunks.append(chunk)

        # Cached so route handlers downstream can read the body again.
        body = request._body = b"".join(chunks)

        try:
            if self._is_json(media_type):
                decoded = json.loads(body) if body.strip() else {}
                if not isinstance(decoded, (dict, list)):
                    raise ValueError("JSON body must be an object or an array")
                request.state.body = decoded
            else:
                request.state.body = dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
        except (UnicodeDecodeError, ValueError) as exc:
            return Fail(MalformedBodyError(f"malformed {media_type} body: {exc}"))

        return CONTINUE


class SecurityHeadersStage(PipelineStage):
    name = "security-headers"
    always = True

    async def process(self, context: RequestContext) -> Outcome:
        context.response_headers.update(SECURITY_HEADERS)
        return CONTINUE


class AccessLogStage(PipelineStage):
    name = "access-log"
    always = True

    async def process(self, context: RequestContext) -> Outcome:
        request = context.request
        try:
            access_logger.info("%s - %s %s", utc_timestamp(), request.method, request.url.path)
        except Exception:
            pass
        return CONTINUE


class DocsStage(PipelineStage):
    """Serve the documentation viewer and its description under docs_path."""

    name = "docs"

    def __init__(self, docs_path: str, document: dict):
        self.docs_path = docs_path.rstrip("/")
        self.document = document
        self.page_paths = {self.docs_path, f"{self.docs_path}/", f"{self.docs_path}/index.html"}
        self.document_path = openapi_url(self.docs_path)

    async def process(self, context: RequestContext) -> Outcome:
        request = context.request
        if request.method not in ("GET", "HEAD"):
            return CONTINUE

        path = request.url.path
        if path in self.page_paths:
            return Respond(render_docs_page(self.docs_path))
        if path == self.document_path:
            return Respond(render_docs_document(self.document))
        return CONTINUE


class PipelineMiddleware(BaseHTTPMiddleware):
    """Run the ordered stages, then route dispatch, and produce exactly one response."""

    def __init__(self, app, stages: Sequence[PipelineStage], dev_mode: bool = False):
        super().__init__(app)
        self.stages = list(stages)
        self.dev_mode = dev_mode

    async def _run_stages(self, context: RequestContext) -> Outcome:
        outcome: Outcome = CONTINUE
        for stage in self.stages:
            halted = not isinstance(outcome, Continue)
            if halted and not stage.always:
                continue
            try:
                result = await stage.process(context)
            except Exception as exc:
                result = Fail(exc)
            if not halted:
                outcome = result
        return outcome

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext(request)
        outcome = await self._run_stages(context)

        if isinstance(outcome, Continue):
            try:
                response = await call_next(request)
            except Exception as exc:
                outcome = Fail(exc)

        if isinstance(outcome, Respond):
            response = outcome.response
        elif isinstance(outcome, Fail):
            response = error_response(request, outcome.error, self.dev_mode)

        return context.apply_headers(response)
