"""
Query execution.

The QueryExecutor sends a backend's native requests one at a time,
classifies every failure into the error taxonomy and renders the decoded
records page by page as they arrive.

Classification:
- HTTP 401 / gRPC UNAUTHENTICATED / token refresh failure -> AuthenticationFailure
- connection, TLS, DNS, timeouts, gRPC UNAVAILABLE        -> TransportError
- success body of the wrong shape                         -> DecodeError
- any other non-success status                            -> UnexpectedStatus

Nothing is retried here. A record that fails to render is logged and
skipped; every other failure ends the operation.
"""

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Optional, Sequence

import aiohttp
import google.auth.exceptions
import grpc

from .backends.base import LogBackend
from .backends.transport import HttpResponse
from .errors import (
    NO_DETAILS,
    AuthenticationFailure,
    DecodeError,
    ErrorEnvelope,
    RenderError,
    TransportError,
    UnexpectedStatus,
)
from .models import GenericQuery, Page
from .render import TemplateRenderer
from .timerange import format_instant

logger = logging.getLogger(__name__)


UNAUTHORIZED = 401
TRANSPORT_CODES = (grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED)


def classify_rpc_error(error: grpc.aio.AioRpcError, node: Optional[str] = None) -> ErrorEnvelope:
    code = error.code()
    if code == grpc.StatusCode.UNAUTHENTICATED:
        return AuthenticationFailure(node)
    if code in TRANSPORT_CODES:
        return TransportError(error.details() or code.name)
    return UnexpectedStatus(code.name, error.details() or NO_DETAILS)


def check_response(backend: LogBackend, response: HttpResponse) -> None:
    """Raise the matching ErrorEnvelope for a non-success HTTP response."""
    if response.ok:
        return
    if response.status == UNAUTHORIZED:
        raise AuthenticationFailure(backend.node.name)
    raise UnexpectedStatus(response.status, backend.error_detail(response.body))


@contextmanager
def classified(backend: LogBackend):
    """Translate transport level exceptions raised inside the block."""
    try:
        yield
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(str(e) or type(e).__name__) from e
    except grpc.aio.AioRpcError as e:
        raise classify_rpc_error(e, backend.node.name) from e
    except google.auth.exceptions.GoogleAuthError as e:
        logger.debug(f"Token refresh failed: {e}")
        raise AuthenticationFailure(backend.node.name) from e


@contextmanager
def decoding():
    """Turn shape errors of a whole response into DecodeError."""
    try:
        yield
    except (ValueError, KeyError, TypeError) as e:
        raise DecodeError(str(e) or type(e).__name__) from e


class QueryExecutor:
    """
    Runs queries against one backend and renders the results.

    Args:
        renderer: Formats one record into a line
        emit: Receives every rendered line (stdout by default)
    """

    def __init__(self, renderer: TemplateRenderer, emit: Callable[[str], None] = print):
        self.renderer = renderer
        self.emit = emit

    async def fetch_page(self, backend: LogBackend, request) -> Page:
        """Send one request and decode its page."""
        with classified(backend):
            response = await backend.send(request)

        if isinstance(response, HttpResponse):
            check_response(backend, response)

        with decoding():
            return backend.decode_page(response)

    async def iter_pages(self, backend: LogBackend, query: GenericQuery) -> AsyncIterator[Page]:
        """
        Yield the pages of a query in order.

        Follows continuation tokens on paginated backends and stops once
        query.limit records have been yielded.
        """
        request = backend.build_request(query)
        remaining = query.limit
        requests = 0

        while True:
            page = await self.fetch_page(backend, request)
            requests += 1

            if remaining is not None:
                page.records = page.records[:remaining]
                remaining -= len(page.records)

            logger.debug(f"Page {requests}: {len(page)} records")
            yield page

            if remaining == 0 or not page.continuation:
                break
            if not backend.capabilities.server_pagination:
                logger.warning("Backend returned a continuation token it cannot follow")
                break
            request = backend.next_request(request, page.continuation)

    def render_page(self, page: Page) -> int:
        """Render and emit every record of a page, returns lines emitted."""
        emitted = 0
        for record in page.records:
            try:
                line = self.renderer.render(record)
            except RenderError as e:
                logger.warning(f"Could not format line: {e}")
                continue
            self.emit(line)
            emitted += 1
        return emitted

    async def run(self, backend: LogBackend, query: GenericQuery) -> int:
        """Run one (possibly multi-page) query, returns lines emitted."""
        logger.info(
            f"Querying {backend.node.name} from {query.start_text} to {query.end_text}"
            f" for {query.text or '*'}"
        )
        emitted = 0
        async for page in self.iter_pages(backend, query):
            emitted += self.render_page(page)
        return emitted

    async def stream(self, backend: LogBackend, start: datetime, terms: Sequence[str] = ()) -> int:
        """Render a backend's native tail stream until it ends."""
        request = backend.build_tail_request(start, terms)
        logger.info(f"Streaming {backend.node.name} from {format_instant(start)}")

        emitted = 0
        with classified(backend), decoding():
            async for page in backend.tail(request):
                emitted += self.render_page(page)
        return emitted
