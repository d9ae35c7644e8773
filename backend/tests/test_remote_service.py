"""Tests for the HTTP processing service, using httpx.MockTransport."""

import json

import httpx
import pandas as pd
import pytest
import pytest_asyncio

from processing import ProcessingError, RemoteProcessingService
from processing.remote import encode_form_value
from workflow import Artifact
from workflow.retry import RetryConfig


API = "http://api.test/api/v1"

FAST_RETRY = RetryConfig(max_attempts=2, base_delay=0.0, jitter=False)


def ok(download_url: str = "http://api.test/files/result.csv", **data) -> httpx.Response:
    return httpx.Response(200, json={
        "data": {"download_url": download_url, **data},
        "message": "Done",
        "meta": {},
    })


class Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses):
        self.requests: list[httpx.Request] = []
        self.responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if self.responses else ok()
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


@pytest.fixture
def recorder():
    return Recorder()


@pytest_asyncio.fixture
async def make_service(tmp_path):
    """Build services on mocked transports; their clients are closed on teardown."""
    clients: list[httpx.AsyncClient] = []

    def factory(recorder: Recorder) -> RemoteProcessingService:
        client = httpx.AsyncClient(base_url=API, transport=httpx.MockTransport(recorder))
        clients.append(client)
        return RemoteProcessingService(api_url=API, retry=FAST_RETRY, client=client, base_path=tmp_path)

    yield factory
    for client in clients:
        await client.aclose()


@pytest.fixture
def input_file(tmp_path):
    path = tmp_path / "people.csv"
    path.write_text("name,age\nann,30\n")
    return Artifact.from_file(path)


class TestFormEncoding:

    def test_values(self):
        assert encode_form_value(True) == "true"
        assert encode_form_value(False) == "false"
        assert encode_form_value(["a", "b"]) == '["a", "b"]'
        assert encode_form_value({"a": "b"}) == '{"a": "b"}'
        assert encode_form_value(3) == "3"
        assert encode_form_value("users") == "users"


@pytest.mark.anyio
class TestRemoteOperations:
    """Tests for request shape and response handling."""

    async def test_extraction_request(self, make_service, recorder, input_file):
        service = make_service(recorder)

        output = await service.process("extraction", input_file, {
            "columns": ["name"], "remove_duplicates": False, "output_filename": "names.csv",
        })

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/excel/extract-columns-to-file"
        body = request.content
        assert b'name="file"; filename="people.csv"' in body
        assert b'name="columns"' in body and b'["name"]' in body
        assert b'name="remove_duplicates"' in body and b"false" in body
        assert b"ann,30" in body

        assert output.url == "http://api.test/files/result.csv"
        assert output.name == "names.csv"
        assert output.metadata["message"] == "Done"

    async def test_relative_download_url(self, make_service, input_file):
        recorder = Recorder(ok("/files/out.sql", statements=3))
        service = make_service(recorder)

        output = await service.process("sql-generation", input_file, {"table_name": "t"})

        assert output.url == "http://api.test/files/out.sql"
        assert output.name == "out.sql"
        assert output.metadata["statements"] == 3

    @pytest.mark.parametrize("name,path", [
        ("people.csv", "/api/v1/csv/search"),
        ("people.xlsx", "/api/v1/excel/search"),
    ])
    async def test_search_endpoint_follows_input_type(self, make_service, recorder, tmp_path, name, path):
        (tmp_path / name).write_bytes(b"data")
        service = make_service(recorder)

        await service.process("search", Artifact.from_file(tmp_path / name), {
            "conditions": [{"column": "age", "operator": "equals", "value": 1}],
        })

        assert recorder.requests[0].url.path == path

    async def test_binding_uploads_both_files(self, make_service, recorder, input_file, tmp_path):
        (tmp_path / "lookup.csv").write_text("name,city\nann,Oslo\n")
        service = make_service(recorder)

        await service.process("binding-single", input_file, {
            "bind_file": "lookup.csv", "comparison_column": "name", "bind_columns": ["city"],
        })

        request = recorder.requests[0]
        assert request.url.path == "/api/v1/excel/bind-single-key"
        assert b'name="source_file"; filename="people.csv"' in request.content
        assert b'name="bind_file"; filename="lookup.csv"' in request.content
        assert b"ann,Oslo" in request.content

    async def test_file_binding_field_names(self, make_service, recorder, input_file, tmp_path):
        (tmp_path / "extra.csv").write_text("x\n1\n")
        service = make_service(recorder)

        await service.process("file-binding", input_file, {
            "bind_file": "extra.csv", "column_mapping": {"x": "y"},
        })

        request = recorder.requests[0]
        assert request.url.path == "/api/v1/files/bind"
        assert b'name="file"; filename="people.csv"' in request.content
        assert b'name="binding_file"; filename="extra.csv"' in request.content

    async def test_missing_bind_file(self, make_service, recorder, input_file):
        service = make_service(recorder)
        with pytest.raises(ProcessingError, match="Binding file not found"):
            await service.process("binding-multi", input_file, {"bind_file": "nope.csv"})
        assert recorder.requests == []

    async def test_table_artifact_uploaded_as_csv(self, make_service, recorder):
        service = make_service(recorder)
        table = Artifact.from_table(pd.DataFrame({"a": [1, 2]}), "filtered.xlsx")

        await service.process("json-generation", table, {})

        body = recorder.requests[0].content
        assert b'filename="filtered.csv"' in body
        assert b"a\n1\n2\n" in body.replace(b"\r\n", b"\n")

    async def test_url_artifact_downloaded_first(self, make_service, input_file):
        recorder = Recorder(httpx.Response(200, content=b"name\nbob\n"), ok())
        service = make_service(recorder)

        await service.process("mapping", Artifact.from_url("http://api.test/files/prev.csv", "prev.csv"), {
            "mapping": {"full": "name"},
        })

        download, upload = recorder.requests
        assert download.method == "GET"
        assert str(download.url) == "http://api.test/files/prev.csv"
        assert upload.url.path == "/api/v1/excel/map-columns"
        assert b"bob" in upload.content
        assert json.dumps({"full": "name"}).encode() in upload.content

    async def test_unsupported_operation(self, make_service, recorder, input_file):
        service = make_service(recorder)
        with pytest.raises(ProcessingError, match="Unsupported operation"):
            await service.process("teleport", input_file, {})


@pytest.mark.anyio
class TestRemoteErrors:
    """Tests for error translation and retries."""

    async def test_error_envelope_message(self, make_service, input_file):
        recorder = Recorder(httpx.Response(400, json={
            "data": None, "message": "Column 'zip' not found", "meta": {"column": "zip"},
        }))
        service = make_service(recorder)

        with pytest.raises(ProcessingError) as exc_info:
            await service.process("extraction", input_file, {"columns": ["zip"]})

        error = exc_info.value
        assert error.status_code == 400
        assert error.operation == "extraction"
        assert "Column 'zip' not found" in error.message
        assert error.details["column"] == "zip"

    async def test_plain_text_error(self, make_service, input_file):
        recorder = Recorder(httpx.Response(502, text="Bad gateway"))
        service = make_service(recorder)

        with pytest.raises(ProcessingError, match="Bad gateway") as exc_info:
            await service.process("extraction", input_file, {"columns": ["a"]})
        assert exc_info.value.status_code == 502

    async def test_error_responses_are_not_retried(self, make_service, input_file):
        recorder = Recorder(httpx.Response(500, json={"message": "boom"}), ok())
        service = make_service(recorder)

        with pytest.raises(ProcessingError):
            await service.process("extraction", input_file, {"columns": ["a"]})
        assert len(recorder.requests) == 1

    async def test_missing_download_url(self, make_service, input_file):
        recorder = Recorder(httpx.Response(200, json={"data": {}, "message": "ok"}))
        service = make_service(recorder)

        with pytest.raises(ProcessingError, match="no download_url"):
            await service.process("extraction", input_file, {"columns": ["a"]})

    async def test_transport_error_is_retried(self, make_service, input_file):
        recorder = Recorder(httpx.ConnectError("refused"), ok())
        service = make_service(recorder)

        output = await service.process("extraction", input_file, {"columns": ["a"]})

        assert len(recorder.requests) == 2
        assert output.url == "http://api.test/files/result.csv"

    async def test_transport_error_exhausts_retries(self, make_service, input_file):
        recorder = Recorder(httpx.ConnectError("refused"), httpx.ConnectError("refused"))
        service = make_service(recorder)

        with pytest.raises(ProcessingError, match="Cannot reach processing service"):
            await service.process("extraction", input_file, {"columns": ["a"]})
        assert len(recorder.requests) == 2

    async def test_timeout(self, make_service, input_file):
        recorder = Recorder(httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow"))
        service = make_service(recorder)

        with pytest.raises(ProcessingError, match="timed out"):
            await service.process("extraction", input_file, {"columns": ["a"]})


@pytest.mark.anyio
class TestClientLifecycle:

    async def test_injected_client_is_not_closed(self, make_service, recorder):
        service = make_service(recorder)
        async with service:
            pass
        assert not service._client.is_closed

    async def test_owned_client_is_closed(self):
        service = RemoteProcessingService(api_url=API)
        await service.aclose()
        assert service._client.is_closed
