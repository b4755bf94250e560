"""Tests for the Google Cloud Logging backend."""

from datetime import datetime, timezone

import grpc
import pytest
from google.cloud.audit import audit_log_pb2
from google.cloud.logging_v2.types import ListLogEntriesResponse, LogEntry, TailLogEntriesResponse
from google.protobuf import any_pb2

from logshades.backends.google import (
    MAX_PAGE_SIZE,
    GoogleLoggingBackend,
    LogEntriesRequest,
    build_filter,
    entry_to_record,
)
from logshades.errors import AuthenticationFailure, TransportError, UnexpectedStatus
from logshades.executor import QueryExecutor
from logshades.models import GenericQuery
from logshades.render import TemplateRenderer


START = datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc)
END = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
LOG_NAME = "projects/my-project/logs/app"


def entry(text):
    return LogEntry(log_name=LOG_NAME, text_payload=text)


def rpc_error(code, details="details"):
    return grpc.aio.AioRpcError(code, grpc.aio.Metadata(), grpc.aio.Metadata(), details)


@pytest.fixture
def client(logging_client_factory):
    return logging_client_factory()


@pytest.fixture
def backend(google_node, client):
    return GoogleLoggingBackend(google_node, client=client)


@pytest.fixture
def executor():
    lines = []
    runner = QueryExecutor(TemplateRenderer("{{ textPayload }}"), emit=lines.append)
    runner.lines = lines
    return runner


class TestFilter:
    def test_bounded(self):
        assert build_filter("A", "B") == 'timestamp >= "A" AND timestamp < "B"'

    def test_with_terms(self):
        assert build_filter("A", "B", ["error", "db"]) == (
            'timestamp >= "A" AND timestamp < "B" AND (error db)'
        )

    def test_unbounded(self):
        assert build_filter("A", None, ["x"]) == 'timestamp >= "A" AND (x)'


class TestBuildRequest:
    def test_request(self, backend):
        request = backend.build_request(GenericQuery(START, END, terms=["oops"]))

        assert request == LogEntriesRequest(
            resource_names=("projects/my-project",),
            filter='timestamp >= "2024-01-15T11:00:00.000Z" AND '
                   'timestamp < "2024-01-15T12:00:00.000Z" AND (oops)',
            order_by="timestamp asc",
            page_size=0,
        )

    def test_page_size_is_capped(self, backend):
        assert backend.build_request(GenericQuery(START, END, limit=20)).page_size == 20
        assert backend.build_request(GenericQuery(START, END, limit=5000)).page_size == MAX_PAGE_SIZE

    def test_next_request_only_changes_token(self, backend):
        first = backend.build_request(GenericQuery(START, END))
        second = backend.next_request(first, "T1")

        assert second.page_token == "T1"
        assert second.filter == first.filter
        assert first.page_token == ""

    def test_list_request_conversion(self, backend):
        native = backend.build_request(GenericQuery(START, END)).to_list_request()

        assert list(native.resource_names) == ["projects/my-project"]
        assert native.order_by == "timestamp asc"

    def test_tail_request_is_unbounded(self, backend):
        request = backend.build_tail_request(START, ["x"])

        assert request.filter == 'timestamp >= "2024-01-15T11:00:00.000Z" AND (x)'
        assert list(request.to_tail_request().resource_names) == ["projects/my-project"]


class TestEntries:
    def test_camel_case_fields(self):
        record = entry_to_record(LogEntry(log_name=LOG_NAME, text_payload="hi", insert_id="abc"))

        assert record == {"logName": LOG_NAME, "textPayload": "hi", "insertId": "abc"}

    def test_audit_log_payload(self):
        payload = any_pb2.Any()
        payload.Pack(audit_log_pb2.AuditLog(method_name="storage.objects.get"))

        record = entry_to_record(LogEntry(log_name=LOG_NAME, proto_payload=payload))

        assert record["protoPayload"]["methodName"] == "storage.objects.get"

    def test_unsupported_payload_keeps_entry(self):
        payload = any_pb2.Any(type_url="type.googleapis.com/example.Unknown", value=b"\x08\x01")

        record = entry_to_record(LogEntry(log_name=LOG_NAME, insert_id="x1", proto_payload=payload))

        assert record["logName"] == LOG_NAME
        assert record["insertId"] == "x1"
        assert "protoPayload" not in record
        assert record["textPayload"] == "Not a supported payload type: type.googleapis.com/example.Unknown"


@pytest.mark.asyncio
async def test_follows_page_tokens_in_order(backend, client, executor):
    client.pages = [
        ListLogEntriesResponse(entries=[entry("1")], next_page_token="T1"),
        ListLogEntriesResponse(entries=[entry("2"), entry("3")], next_page_token="T2"),
        ListLogEntriesResponse(entries=[], next_page_token="T3"),
        ListLogEntriesResponse(entries=[entry("4")]),
    ]

    count = await executor.run(backend, GenericQuery(START, END))

    assert count == 4
    assert executor.lines == ["1", "2", "3", "4"]
    assert [r.page_token for r in client.requests] == ["", "T1", "T2", "T3"]


@pytest.mark.asyncio
async def test_limit_stops_paging(backend, client, executor):
    client.pages = [
        ListLogEntriesResponse(entries=[entry("1"), entry("2")], next_page_token="T1"),
        ListLogEntriesResponse(entries=[entry("3")]),
    ]

    await executor.run(backend, GenericQuery(START, END, limit=2))

    assert executor.lines == ["1", "2"]
    assert len(client.requests) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("code,error", [
    (grpc.StatusCode.UNAUTHENTICATED, AuthenticationFailure),
    (grpc.StatusCode.UNAVAILABLE, TransportError),
    (grpc.StatusCode.DEADLINE_EXCEEDED, TransportError),
    (grpc.StatusCode.PERMISSION_DENIED, UnexpectedStatus),
])
async def test_rpc_errors_are_classified(backend, client, executor, code, error):
    client.error = rpc_error(code)

    with pytest.raises(error):
        await executor.run(backend, GenericQuery(START, END))


@pytest.mark.asyncio
async def test_unexpected_status_carries_code_and_details(backend, client, executor):
    client.error = rpc_error(grpc.StatusCode.INVALID_ARGUMENT, "unparseable filter")

    with pytest.raises(UnexpectedStatus) as e:
        await executor.run(backend, GenericQuery(START, END))

    assert str(e.value) == "INVALID_ARGUMENT: unparseable filter"


@pytest.mark.asyncio
async def test_tail_yields_pages(backend, client):
    client.tail_responses = [
        TailLogEntriesResponse(entries=[entry("a")]),
        TailLogEntriesResponse(entries=[entry("b"), entry("c")]),
    ]

    pages = [page async for page in backend.tail(backend.build_tail_request(START))]

    assert [[r["textPayload"] for r in p.records] for p in pages] == [["a"], ["b", "c"]]
    assert client.tail_requests[0].filter == 'timestamp >= "2024-01-15T11:00:00.000Z"'


@pytest.mark.asyncio
async def test_disconnect_closes_client(backend, client):
    async with backend:
        pass

    assert client.closed
    assert backend.client is None


@pytest.mark.asyncio
async def test_connect_accepts_https_endpoint(google_node, monkeypatch):
    opened = []
    insecure_channel = grpc.aio.insecure_channel

    def secure_channel(target, credentials, interceptors=None):
        opened.append((target, len(interceptors)))
        return insecure_channel(target, interceptors=interceptors)

    monkeypatch.setattr(grpc.aio, "secure_channel", secure_channel)
    google_node.url = "https://logging.example.com"
    backend = GoogleLoggingBackend(google_node, token_source=lambda: "t0k")

    async with backend:
        assert backend.client is not None

    assert opened == [("logging.example.com:443", 2)]
    assert backend.client is None
