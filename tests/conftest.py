import json
import logging
from datetime import datetime, timezone

import pytest

from logshades.backends.base import BackendType
from logshades.backends.transport import HttpResponse
from logshades.config import NodeConfig
from logshades.errors import NoSecretError


class FakeTransport:
    """Stand-in for HttpTransport that replays canned responses."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.sent = []
        self.connected = False

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def send(self, request):
        self.sent.append(request)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


class FakeCredentialStore:
    """In-memory CredentialStore."""

    def __init__(self, secrets=None):
        self.secrets = dict(secrets or {})
        self.lookups = []

    def get(self, node, user):
        self.lookups.append((node, user))
        try:
            return self.secrets[(node, user)]
        except KeyError:
            raise NoSecretError(node)

    def set(self, node, user, secret):
        self.secrets[(node, user)] = secret


class FakeLoggingClient:
    """Stand-in for LoggingClient with scripted list pages and tail responses."""

    def __init__(self, pages=None, tail_responses=None, error=None):
        self.pages = list(pages or [])
        self.tail_responses = list(tail_responses or [])
        self.error = error
        self.requests = []
        self.tail_requests = []
        self.closed = False

    async def list_entries(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.pages.pop(0)

    def tail_entries(self, request):
        self.tail_requests.append(request)
        return self._stream()

    async def _stream(self):
        for response in self.tail_responses:
            yield response

    async def close(self):
        self.closed = True


def json_response(data, status=200):
    return HttpResponse(status=status, body=json.dumps(data))


@pytest.fixture
def reference():
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def graylog_node():
    return NodeConfig(
        name="default",
        type=BackendType.GRAYLOG,
        url="https://graylog.example.com/api",
        user="admin",
    )


@pytest.fixture
def elastic_node():
    return NodeConfig(
        name="es",
        type=BackendType.ELASTIC,
        url="http://localhost:9200/logs-*",
    )


@pytest.fixture
def google_node():
    return NodeConfig(
        name="gcp",
        type=BackendType.GOOGLE,
        resources=["projects/my-project"],
    )


@pytest.fixture
def transport_factory():
    return FakeTransport


@pytest.fixture
def credentials():
    return FakeCredentialStore({("default", "admin"): "secret"})


@pytest.fixture
def empty_credentials():
    return FakeCredentialStore()


@pytest.fixture
def respond():
    """Build an HttpResponse from a JSON-serializable body."""
    return json_response


@pytest.fixture
def logging_client_factory():
    return FakeLoggingClient


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
