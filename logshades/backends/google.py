"""
Google Cloud Logging Backend - gRPC

Uses the LoggingServiceV2 RPCs directly:
- ListLogEntries for bounded queries, following next_page_token until the
  service stops returning one
- TailLogEntries for follow mode, a single streaming call that delivers new
  entries as they are ingested (no window polling)

Authentication uses Google application default credentials; the token is
attached per call by the channel interceptor. Entries are normalized to the
protobuf JSON mapping (camelCase field names). An entry whose protoPayload
cannot be decoded is kept, with a diagnostic textPayload in its place.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence, Tuple, TYPE_CHECKING

import google.auth
import google.auth.exceptions
import google.auth.transport.requests
import google.cloud.audit.audit_log_pb2  # noqa: F401  registers AuditLog for Any decoding
from google.cloud.logging_v2.types import (
    ListLogEntriesRequest,
    ListLogEntriesResponse,
    LogEntry,
    TailLogEntriesRequest,
    TailLogEntriesResponse,
)
from google.protobuf import json_format
from google.protobuf.message import DecodeError as ProtoDecodeError

from .base import (
    LogBackend,
    BackendType,
    BackendCapabilities
)
from .transport import create_channel
from ..errors import CredentialError
from ..models import GenericQuery, NormalizedRecord, Page
from ..timerange import format_instant

if TYPE_CHECKING:
    from ..config import NodeConfig
    from ..credentials import CredentialStore

logger = logging.getLogger(__name__)


ENDPOINT = "logging.googleapis.com:443"
SCOPES = ["https://www.googleapis.com/auth/logging.read"]
MAX_PAGE_SIZE = 1000

LIST_METHOD = "/google.logging.v2.LoggingServiceV2/ListLogEntries"
TAIL_METHOD = "/google.logging.v2.LoggingServiceV2/TailLogEntries"

GOOGLE_CAPABILITIES = BackendCapabilities(
    requires_credential=False,
    optional_credential=False,
    server_pagination=True,
    native_streaming=True,
    newest_first=False,
    default_page_size=MAX_PAGE_SIZE,
)


@dataclass(frozen=True)
class LogEntriesRequest:
    """Immutable description of a ListLogEntries / TailLogEntries call."""
    resource_names: Tuple[str, ...]
    filter: str
    order_by: str = "timestamp asc"
    page_size: int = 0
    page_token: str = ""

    def to_list_request(self) -> ListLogEntriesRequest:
        return ListLogEntriesRequest(
            resource_names=list(self.resource_names),
            filter=self.filter,
            order_by=self.order_by,
            page_size=self.page_size,
            page_token=self.page_token,
        )

    def to_tail_request(self) -> TailLogEntriesRequest:
        return TailLogEntriesRequest(
            resource_names=list(self.resource_names),
            filter=self.filter,
        )


def build_filter(start: str, end: Optional[str] = None, terms: Sequence[str] = ()) -> str:
    """Logging query language filter for a time window plus free-text terms."""
    clauses = [f'timestamp >= "{start}"']
    if end is not None:
        clauses.append(f'timestamp < "{end}"')
    if terms:
        clauses.append(f"({' '.join(terms)})")
    return " AND ".join(clauses)


def entry_to_record(entry: LogEntry) -> NormalizedRecord:
    """
    Convert a LogEntry to a plain dict.

    Unsupported or corrupt protoPayloads are dropped and described in
    textPayload so the rest of the entry still renders.
    """
    message = LogEntry.pb(entry) if isinstance(entry, LogEntry) else entry
    try:
        return json_format.MessageToDict(message)
    except (TypeError, ProtoDecodeError, json_format.Error) as e:
        type_url = message.proto_payload.type_url
        reason = f"Not a supported payload type: {type_url}" if type_url else str(e)
        logger.warning(f"Could not decode payload of entry {message.insert_id}: {e}")

        stripped = type(message)()
        stripped.CopyFrom(message)
        stripped.ClearField("proto_payload")
        record = json_format.MessageToDict(stripped)
        record["textPayload"] = reason
        record["decode_error"] = reason
        return record


class GoogleTokenSource:
    """Application default credentials, refreshed whenever the token is no longer valid."""

    def __init__(self, scopes=SCOPES):
        try:
            self._credentials, self.project = google.auth.default(scopes=scopes)
        except google.auth.exceptions.DefaultCredentialsError as e:
            raise CredentialError(
                f"No Google application default credentials found: {e}\n\n"
                f"Please run `gcloud auth application-default login`."
            ) from e
        self._request = google.auth.transport.requests.Request()

    def __call__(self) -> str:
        if not self._credentials.valid:
            self._credentials.refresh(self._request)
        return self._credentials.token


async def _open_request_stream(request: TailLogEntriesRequest) -> AsyncIterator[TailLogEntriesRequest]:
    yield request
    # Keep the request side open for the lifetime of the tail
    await asyncio.Event().wait()


class LoggingClient:
    """Raw LoggingServiceV2 stubs on an authenticated channel."""

    def __init__(self, channel):
        self._channel = channel
        self._list = channel.unary_unary(
            LIST_METHOD,
            request_serializer=ListLogEntriesRequest.serialize,
            response_deserializer=ListLogEntriesResponse.deserialize,
        )
        self._tail = channel.stream_stream(
            TAIL_METHOD,
            request_serializer=TailLogEntriesRequest.serialize,
            response_deserializer=TailLogEntriesResponse.deserialize,
        )

    async def list_entries(self, request: ListLogEntriesRequest) -> ListLogEntriesResponse:
        return await self._list(request)

    def tail_entries(self, request: TailLogEntriesRequest) -> AsyncIterator[TailLogEntriesResponse]:
        return self._tail(_open_request_stream(request))

    async def close(self) -> None:
        await self._channel.close()


class GoogleLoggingBackend(LogBackend):
    """
    Google Cloud Logging over gRPC.

    Usage:
        async with GoogleLoggingBackend(node) as backend:
            response = await backend.send(backend.build_request(query))
            page = backend.decode_page(response)

    Pass `client` to use an existing LoggingClient (or a stand-in with the
    same methods) instead of opening a channel on connect.
    """

    def __init__(self, node: "NodeConfig", client=None, token_source=None):
        super().__init__(node)
        self.client = client
        self._token_source = token_source

    @classmethod
    def from_node(cls, node: "NodeConfig", credentials: "CredentialStore" = None) -> "GoogleLoggingBackend":
        # No stored password: access is granted through application default credentials
        return cls(node, token_source=GoogleTokenSource())

    @property
    def backend_type(self) -> BackendType:
        return BackendType.GOOGLE

    @property
    def capabilities(self) -> BackendCapabilities:
        return GOOGLE_CAPABILITIES

    async def connect(self) -> None:
        if self.client is None:
            token_source = self._token_source or GoogleTokenSource()
            channel = create_channel(
                self.node.url or ENDPOINT,
                token_source,
                self.node.ca_bundle
            )
            self.client = LoggingClient(channel)
        logger.info(f"GoogleLoggingBackend connected for {', '.join(self.node.resources)}")

    async def disconnect(self) -> None:
        if self.client:
            await self.client.close()
            self.client = None
        logger.info("GoogleLoggingBackend disconnected")

    def build_request(self, query: GenericQuery) -> LogEntriesRequest:
        page_size = min(query.limit, MAX_PAGE_SIZE) if query.limit else 0
        return LogEntriesRequest(
            resource_names=tuple(self.node.resources),
            filter=build_filter(query.start_text, query.end_text, query.terms),
            page_size=page_size,
        )

    def next_request(self, request: LogEntriesRequest, token: str) -> LogEntriesRequest:
        return replace(request, page_token=token)

    async def send(self, request: LogEntriesRequest) -> ListLogEntriesResponse:
        if not self.client:
            raise RuntimeError("Backend not connected. Use 'async with' or call connect().")
        return await self.client.list_entries(request.to_list_request())

    def decode_page(self, response: ListLogEntriesResponse) -> Page:
        return Page(
            records=[entry_to_record(entry) for entry in response.entries],
            continuation=response.next_page_token or None
        )

    def build_tail_request(self, start: datetime, terms: Sequence[str] = ()) -> LogEntriesRequest:
        return LogEntriesRequest(
            resource_names=tuple(self.node.resources),
            filter=build_filter(format_instant(start), None, terms),
        )

    async def tail(self, request: LogEntriesRequest) -> AsyncIterator[Page]:
        if not self.client:
            raise RuntimeError("Backend not connected. Use 'async with' or call connect().")

        async for response in self.client.tail_entries(request.to_tail_request()):
            for info in response.suppression_info:
                logger.warning(
                    f"{info.suppressed_count} entries suppressed by the service ({info.reason.name})"
                )
            yield Page(records=[entry_to_record(entry) for entry in response.entries])
