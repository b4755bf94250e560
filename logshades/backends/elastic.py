"""
Elasticsearch Backend - document search

Queries POST <url>/_search with a JSON body.

The body sorts by the node's timestamp field ascending and combines an
optional free-text clause with a [from, to) range clause. Without terms
only the range clause is sent.

Authentication is optional: basic auth is used only when the node has a
user configured.
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
from ..errors import NO_DETAILS
from ..models import GenericQuery, NormalizedRecord, Page, placeholder_record

if TYPE_CHECKING:
    from ..config import NodeConfig
    from ..credentials import CredentialStore

logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE = 10000

ELASTIC_CAPABILITIES = BackendCapabilities(
    requires_credential=False,
    optional_credential=True,
    server_pagination=False,
    native_streaming=False,
    newest_first=False,
    default_page_size=DEFAULT_PAGE_SIZE,
)


def range_clause(field: str, start: str, end: str) -> Dict[str, Any]:
    return {"range": {field: {"gte": start, "lt": end}}}


def text_clause(text: str) -> Dict[str, Any]:
    return {"query_string": {"query": text, "default_operator": "AND"}}


class ElasticBackend(LogBackend):
    """
    Elasticsearch _search.

    Usage:
        async with ElasticBackend(node, HttpTransport()) as backend:
            page = backend.decode_page(await backend.send(backend.build_request(query)))
    """

    def __init__(self, node: "NodeConfig", transport: HttpTransport, password: Optional[str] = None):
        super().__init__(node)
        self.transport = transport
        self._base = HttpRequest(
            method="POST",
            url=join_url(node.url, "_search"),
            user=node.user or None,
            password=password
        )

    @classmethod
    def from_node(cls, node: "NodeConfig", credentials: "CredentialStore") -> "ElasticBackend":
        password = credentials.get(node.name, node.user) if node.user else None
        transport = HttpTransport(
            timeout=node.timeout,
            verify_tls=node.verify_tls,
            ca_bundle=node.ca_bundle
        )
        return cls(node, transport, password)

    @property
    def backend_type(self) -> BackendType:
        return BackendType.ELASTIC

    @property
    def capabilities(self) -> BackendCapabilities:
        return ELASTIC_CAPABILITIES

    async def connect(self) -> None:
        await self.transport.connect()
        logger.info(f"ElasticBackend connected to {self._base.url}")

    async def disconnect(self) -> None:
        await self.transport.disconnect()
        logger.info("ElasticBackend disconnected")

    def build_request(self, query: GenericQuery) -> HttpRequest:
        field = self.node.timestamp_field
        time_range = range_clause(field, query.start_text, query.end_text)

        if query.terms:
            clause = {"bool": {"must": [text_clause(query.text), time_range]}}
        else:
            clause = time_range

        body = {
            "size": query.limit if query.limit is not None else DEFAULT_PAGE_SIZE,
            "sort": [{field: {"order": "asc"}}],
            "query": clause,
        }
        return self._base.clone(json=body)

    async def send(self, request: HttpRequest) -> HttpResponse:
        return await self.transport.send(request)

    def decode_page(self, response: HttpResponse) -> Page:
        data = json.loads(response.body)
        hits = data["hits"]["hits"]
        if not isinstance(hits, list):
            raise ValueError("'hits.hits' is not a list")

        if data.get("timed_out"):
            logger.warning("Search timed out on the server, results may be partial")

        return Page(records=[self._decode_hit(hit) for hit in hits])

    def _decode_hit(self, hit: Any) -> NormalizedRecord:
        source = hit.get("_source") if isinstance(hit, dict) else None
        if not isinstance(source, dict):
            logger.warning("Search hit without a '_source' object")
            return placeholder_record("hit has no '_source' object")
        return source

    def error_detail(self, body: str) -> str:
        try:
            error = json.loads(body)["error"]
        except (ValueError, KeyError, TypeError):
            return NO_DETAILS

        if isinstance(error, str):
            return error
        if isinstance(error, dict) and "type" in error and "reason" in error:
            return f"{error['type']}: {error['reason']}"
        return NO_DETAILS
