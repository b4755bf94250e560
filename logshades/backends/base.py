"""
Base Backend Abstract Class

Defines the interface that all log search backends must implement.

A backend translates a GenericQuery into its native request (pure data,
no I/O), sends that request (the only I/O step) and decodes the native
response into a Page of normalized records in chronological order.
Classification of failures into the error taxonomy happens in the
QueryExecutor, not here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional, Sequence

from ..errors import NO_DETAILS
from ..models import GenericQuery, Page

if TYPE_CHECKING:
    from ..config import NodeConfig


class BackendType(Enum):
    """Available backend types."""
    GRAYLOG = "graylog"    # REST search API
    ELASTIC = "elastic"    # Document store search
    GOOGLE = "google"      # Cloud Logging over gRPC


@dataclass(frozen=True)
class BackendCapabilities:
    """
    Declares what a backend can and cannot do.

    Used for:
    - Credential lookup before any request is sent
    - Choosing between page-following and single requests
    - Choosing between polling and native streaming in follow mode
    """
    # Credentials
    requires_credential: bool = False
    optional_credential: bool = False

    # Result model
    server_pagination: bool = False
    native_streaming: bool = False
    newest_first: bool = False
    default_page_size: Optional[int] = None

    def get_limitations(self) -> List[str]:
        """Return list of known limitations for display."""
        limitations = []

        if not self.server_pagination:
            limitations.append("Single page per request, narrow the time range for more results")
        if not self.native_streaming:
            limitations.append("Follow mode polls with a latency buffer")
        if self.newest_first:
            limitations.append("Results arrive newest first and are reordered locally")

        return limitations

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "requires_credential": self.requires_credential,
            "optional_credential": self.optional_credential,
            "server_pagination": self.server_pagination,
            "native_streaming": self.native_streaming,
            "newest_first": self.newest_first,
            "default_page_size": self.default_page_size,
            "known_limitations": self.get_limitations()
        }


class LogBackend(ABC):
    """
    Abstract base class for all log search backends.

    Implementations:
    - GraylogBackend: Graylog universal search REST API
    - ElasticBackend: Elasticsearch _search endpoint
    - GoogleLoggingBackend: Google Cloud Logging ListLogEntries/TailLogEntries
    """

    def __init__(self, node: "NodeConfig"):
        self.node = node

    @property
    @abstractmethod
    def backend_type(self) -> BackendType:
        """Return the backend type."""
        pass

    @property
    @abstractmethod
    def capabilities(self) -> BackendCapabilities:
        """Return backend capabilities."""
        pass

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the backend connection/session."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Clean up the backend connection/session."""
        pass

    @abstractmethod
    def build_request(self, query: GenericQuery) -> Any:
        """
        Translate a generic query into the native request.

        Must not perform I/O; the result is treated as immutable.
        """
        pass

    @abstractmethod
    async def send(self, request: Any) -> Any:
        """Send a native request and return the raw native response."""
        pass

    @abstractmethod
    def decode_page(self, response: Any) -> Page:
        """
        Decode a successful raw response into a Page.

        Raises ValueError, KeyError or TypeError when the response as a
        whole does not have the expected shape. Records that cannot be
        decoded individually are replaced by placeholders instead.
        """
        pass

    def error_detail(self, body: str) -> str:
        """
        Extract a human readable message from an error response body.

        Never raises; falls back to a fixed message.
        """
        return NO_DETAILS

    def next_request(self, request: Any, token: str) -> Any:
        """Derive the request for the page after `token`."""
        raise NotImplementedError(f"{self.backend_type.value} backend does not paginate")

    def build_tail_request(self, start: datetime, terms: Sequence[str] = ()) -> Any:
        """Build an unbounded streaming request starting at `start`."""
        raise NotImplementedError(f"{self.backend_type.value} backend does not stream")

    def tail(self, request: Any) -> AsyncIterator[Page]:
        """Stream pages of new records until the server closes the stream."""
        raise NotImplementedError(f"{self.backend_type.value} backend does not stream")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    def describe(self) -> Dict[str, Any]:
        """Summary of the node and backend for display."""
        return {
            "node": self.node.name,
            "backend": self.backend_type.value,
            "capabilities": self.capabilities.to_dict(),
            "known_limitations": self.capabilities.get_limitations(),
        }
