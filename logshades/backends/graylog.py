"""
Graylog Backend - REST universal search

Queries GET <url>/search/universal/absolute with basic auth.

Characteristics:
- One request yields one page, no continuation token
- Messages arrive newest first and are reversed into chronological order
- A user and a stored password are mandatory
"""

import json
import logging
from typing import Any, Dict, Optional, TYPE_CHECKING

from .base import (
    LogBackend,
    BackendType,
    BackendCapabilities
)
from .transport import HttpRequest, HttpResponse, HttpTransport, join_url
from ..errors import NO_DETAILS, NoUserError
from ..models import GenericQuery, NormalizedRecord, Page, placeholder_record

if TYPE_CHECKING:
    from ..config import NodeConfig
    from ..credentials import CredentialStore

logger = logging.getLogger(__name__)


GRAYLOG_CAPABILITIES = BackendCapabilities(
    requires_credential=True,
    optional_credential=False,
    server_pagination=False,
    native_streaming=False,
    newest_first=True,
)

SEARCH_PATH = ("search", "universal", "absolute")
MATCH_ALL = "*"


class GraylogBackend(LogBackend):
    """
    Graylog universal search.

    Usage:
        async with GraylogBackend(node, HttpTransport(), password) as backend:
            page = backend.decode_page(await backend.send(backend.build_request(query)))
    """

    def __init__(self, node: "NodeConfig", transport: HttpTransport, password: str):
        super().__init__(node)
        self.transport = transport
        self._base = HttpRequest(
            method="GET",
            url=join_url(node.url, *SEARCH_PATH),
            user=node.user,
            password=password
        )

    @classmethod
    def from_node(cls, node: "NodeConfig", credentials: "CredentialStore") -> "GraylogBackend":
        if not node.user:
            raise NoUserError(node.name)
        password = credentials.get(node.name, node.user)
        transport = HttpTransport(
            timeout=node.timeout,
            verify_tls=node.verify_tls,
            ca_bundle=node.ca_bundle
        )
        return cls(node, transport, password)

    @property
    def backend_type(self) -> BackendType:
        return BackendType.GRAYLOG

    @property
    def capabilities(self) -> BackendCapabilities:
        return GRAYLOG_CAPABILITIES

    async def connect(self) -> None:
        await self.transport.connect()
        logger.info(f"GraylogBackend connected to {self._base.url}")

    async def disconnect(self) -> None:
        await self.transport.disconnect()
        logger.info("GraylogBackend disconnected")

    def build_request(self, query: GenericQuery) -> HttpRequest:
        params = {
            "query": query.text or MATCH_ALL,
            "from": query.start_text,
            "to": query.end_text,
        }
        if query.limit is not None:
            params["limit"] = str(query.limit)
        return self._base.with_params(params)

    async def send(self, request: HttpRequest) -> HttpResponse:
        return await self.transport.send(request)

    def decode_page(self, response: HttpResponse) -> Page:
        data = json.loads(response.body)
        if not isinstance(data, dict):
            raise ValueError("search response is not a JSON object")

        messages = data.get("messages") or []
        if not isinstance(messages, list):
            raise ValueError("'messages' is not a list")

        records = [self._decode_message(entry) for entry in messages]
        # Graylog returns newest first
        records.reverse()
        return Page(records=records)

    def _decode_message(self, entry: Any) -> NormalizedRecord:
        message = entry.get("message") if isinstance(entry, dict) else None
        if not isinstance(message, dict):
            logger.warning("Search result entry without a 'message' object")
            return placeholder_record("entry has no 'message' object")
        return message

    def error_detail(self, body: str) -> str:
        message = _json_field(body, "message")
        return message if isinstance(message, str) else NO_DETAILS


def _json_field(body: str, key: str) -> Optional[Any]:
    try:
        data: Dict[str, Any] = json.loads(body)
        return data[key]
    except (ValueError, KeyError, TypeError):
        return None
