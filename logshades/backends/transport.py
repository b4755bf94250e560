"""
Transports used by the backends.

- HttpTransport: aiohttp session shared by all requests against one node.
  Requests are frozen HttpRequest values; a node's base request (URL,
  basic auth, Accept header) is cloned with new parameters for every poll.
- create_channel: gRPC channel pinned to a CA bundle with bearer token
  interceptors (unary and streaming) that ask for a fresh token on every call.

Timeouts are the transports' business; nothing above them adds deadlines.
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import certifi
import grpc
from aiohttp import BasicAuth, ClientSession, ClientTimeout, TCPConnector

from ..errors import ConfigError

logger = logging.getLogger(__name__)


JSON_ACCEPT = (("Accept", "application/json"),)


def join_url(base: str, *segments: str) -> str:
    """Append path segments to a base URL, e.g. https://host/api + search."""
    parsed = urlparse(base or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"Not a valid base URL: {base!r}")
    return "/".join([base.rstrip("/")] + [s.strip("/") for s in segments])


@dataclass(frozen=True)
class HttpRequest:
    """An immutable HTTP request description."""
    method: str
    url: str
    params: Tuple[Tuple[str, str], ...] = ()
    json: Optional[Dict[str, Any]] = None
    headers: Tuple[Tuple[str, str], ...] = JSON_ACCEPT
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def clone(self, **changes) -> "HttpRequest":
        """Copy of this request with some fields replaced."""
        return replace(self, **changes)

    def with_params(self, params: Dict[str, str]) -> "HttpRequest":
        return self.clone(params=tuple(params.items()))

    @property
    def params_dict(self) -> Dict[str, str]:
        return dict(self.params)

    @property
    def auth(self) -> Optional[BasicAuth]:
        if self.user is None:
            return None
        return BasicAuth(self.user, self.password or "")


@dataclass(frozen=True)
class HttpResponse:
    """Status and body of a finished HTTP exchange."""
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpTransport:
    """
    aiohttp client for one node.

    Usage:
        transport = HttpTransport(timeout=30)
        await transport.connect()
        response = await transport.send(request)
        await transport.disconnect()
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_tls: bool = True,
        ca_bundle: Optional[str] = None
    ):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.ca_bundle = ca_bundle
        self._session: Optional[ClientSession] = None

    def _ssl(self):
        if not self.verify_tls:
            return False
        if self.ca_bundle:
            return ssl.create_default_context(cafile=self.ca_bundle)
        return True

    async def connect(self) -> None:
        """Initialize HTTP session."""
        self._session = ClientSession(
            timeout=ClientTimeout(total=self.timeout),
            connector=TCPConnector(ssl=self._ssl())
        )

    async def disconnect(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def send(self, request: HttpRequest) -> HttpResponse:
        """
        Send a request and read the whole body.

        Raises aiohttp.ClientError or asyncio.TimeoutError on transport
        failures; any HTTP status is returned, not raised.
        """
        if not self._session:
            raise RuntimeError("Transport not connected")

        logger.debug(f"{request.method} {request.url} params={request.params_dict}")
        async with self._session.request(
            request.method,
            request.url,
            params=list(request.params),
            json=request.json,
            headers=dict(request.headers),
            auth=request.auth
        ) as response:
            # Undecodable bytes must not hide the status from classification
            body = await response.text(errors="replace")
            return HttpResponse(status=response.status, body=body)


def _call_details(details, metadata):
    return grpc.aio.ClientCallDetails(
        method=details.method,
        timeout=details.timeout,
        metadata=metadata,
        credentials=details.credentials,
        wait_for_ready=details.wait_for_ready,
    )


class _BearerToken:
    """Adds `authorization: Bearer <token>` to the call metadata."""

    def __init__(self, token_source: Callable[[], str]):
        self._token_source = token_source

    async def _authorized(self, details):
        # The token source may block on a refresh request
        token = await asyncio.to_thread(self._token_source)
        metadata = grpc.aio.Metadata(*(details.metadata or ()))
        metadata.add("authorization", f"Bearer {token}")
        return _call_details(details, metadata)


# grpc.aio files each interceptor under one call type only, so unary and
# streaming calls need separate instances.
class UnaryBearerTokenInterceptor(_BearerToken, grpc.aio.UnaryUnaryClientInterceptor):
    async def intercept_unary_unary(self, continuation, client_call_details, request):
        return await continuation(await self._authorized(client_call_details), request)


class StreamBearerTokenInterceptor(_BearerToken, grpc.aio.StreamStreamClientInterceptor):
    async def intercept_stream_stream(self, continuation, client_call_details, request_iterator):
        return await continuation(await self._authorized(client_call_details), request_iterator)


def bearer_token_interceptors(token_source: Callable[[], str]) -> List[grpc.aio.ClientInterceptor]:
    """Interceptors that authenticate both ListLogEntries and TailLogEntries."""
    return [
        UnaryBearerTokenInterceptor(token_source),
        StreamBearerTokenInterceptor(token_source),
    ]


def grpc_target(endpoint: str) -> str:
    """
    gRPC `host:port` target for an endpoint.

    Accepts a bare target (logging.googleapis.com:443) or an https URL,
    whose host is used with port 443 unless one is given.
    """
    if "://" not in endpoint:
        return endpoint
    parsed = urlparse(endpoint)
    if parsed.scheme != "https" or not parsed.hostname or parsed.path not in ("", "/"):
        raise ConfigError(f"Not a valid gRPC endpoint: {endpoint!r}")
    try:
        port = parsed.port or 443
    except ValueError:
        raise ConfigError(f"Not a valid gRPC endpoint: {endpoint!r}")
    return f"{parsed.hostname}:{port}"


def read_ca_bundle(path: Optional[str] = None) -> bytes:
    """Root certificates for a pinned TLS channel (certifi bundle by default)."""
    with open(path or certifi.where(), "rb") as f:
        return f.read()


def create_channel(
    endpoint: str,
    token_source: Callable[[], str],
    ca_bundle: Optional[str] = None
) -> grpc.aio.Channel:
    """Open a TLS gRPC channel that authenticates every call with a bearer token."""
    target = grpc_target(endpoint)
    credentials = grpc.ssl_channel_credentials(root_certificates=read_ca_bundle(ca_bundle))
    logger.debug(f"Opening gRPC channel to {target}")
    return grpc.aio.secure_channel(
        target,
        credentials,
        interceptors=bearer_token_interceptors(token_source)
    )
