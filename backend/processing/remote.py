"""
Remote Processing Service.

Posts multipart forms to the processing API. Every endpoint answers with the
envelope ``{"data": {...}, "message": "...", "meta": {...}}`` and the
produced file is referenced by ``data.download_url``.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import httpx

from workflow.artifact import Artifact
from workflow.retry import DEFAULT_RETRY, RetryConfig, retry_async

from .base import ProcessingError, ProcessingService

logger = logging.getLogger(__name__)


ENDPOINTS = {
    "extraction": "/excel/extract-columns-to-file",
    "mapping": "/excel/map-columns",
    "normalization": "/normalization/apply",
    "search": "/excel/search",
    "sql-generation": "/sql/generate-to-text",
    "sql-custom": "/sql/generate-custom-to-text",
    "json-generation": "/json/generate",
    "json-template": "/json/generate-with-template",
    "csv-convert": "/csv/convert-to-excel",
    "binding-single": "/excel/bind-single-key",
    "binding-multi": "/excel/bind-multi-key",
    "file-binding": "/files/bind",
}

# Form field names for the (input, bind) uploads, where they differ from "file"
UPLOAD_FIELDS = {
    "binding-single": ("source_file", "bind_file"),
    "binding-multi": ("source_file", "bind_file"),
    "file-binding": ("file", "binding_file"),
}

CSV_SEARCH_SUFFIXES = {".csv", ".tsv"}


def encode_form_value(value: Any) -> str:
    """Encode a parameter the way the API expects it in a form field."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    return str(value)


def name_from_url(url: str, fallback: str) -> str:
    name = Path(unquote(urlparse(url).path)).name
    return name or fallback


class RemoteProcessingService(ProcessingService):
    """
    Processing service backed by the HTTP processing API.

    Args:
        api_url: Base URL of the API (e.g. http://localhost:5050/api/v1)
        timeout: Request timeout in seconds
        retry: Backoff policy for transport failures
        client: Pre-built httpx client (its base_url is used as-is)
        base_path: Directory that relative binding-file paths resolve against
    """

    name = "remote"

    def __init__(
        self,
        api_url: str = "http://localhost:5050/api/v1",
        timeout: float = 120.0,
        retry: RetryConfig | None = None,
        client: Optional[httpx.AsyncClient] = None,
        base_path: Path | str | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.retry = retry or DEFAULT_RETRY
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.api_url, timeout=timeout)

    def supported_operations(self) -> list[str]:
        return list(ENDPOINTS.keys())

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def process(
        self,
        operation: str,
        artifact: Artifact,
        parameters: dict[str, Any],
    ) -> Artifact:
        if operation not in ENDPOINTS:
            raise ProcessingError(f"Unsupported operation: {operation}", operation=operation)

        endpoint = ENDPOINTS[operation]
        if operation == "search" and artifact.suffix in CSV_SEARCH_SUFFIXES:
            endpoint = "/csv/search"

        params = dict(parameters)
        input_field, bind_field = UPLOAD_FIELDS.get(operation, ("file", None))
        files = {input_field: await self._upload(artifact, operation)}

        bind_file = params.pop("bind_file", None)
        if bind_field:
            files[bind_field] = self._read_bind_file(bind_file, operation)

        data = {k: encode_form_value(v) for k, v in params.items() if v is not None}

        logger.debug(f"POST {endpoint} ({operation}) with fields {sorted(data)}")
        response = await self._request("POST", endpoint, operation, data=data, files=files)
        return self._to_artifact(response, operation, params.get("output_filename"))

    async def download(self, artifact: Artifact) -> bytes:
        """Fetch the content of a URL artifact."""
        if not artifact.url:
            raise ProcessingError(f"Artifact {artifact.name} has no download URL")
        response = await self._request("GET", artifact.url, "download")
        return response.content

    # --- Internals ---

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await retry_async(
                self._client.request, method, url, config=self.retry, **kwargs
            )
        except httpx.TimeoutException as e:
            raise ProcessingError(
                f"Processing service timed out: {e}", operation=operation
            ) from e
        except httpx.TransportError as e:
            raise ProcessingError(
                f"Cannot reach processing service at {self.api_url}: {e}", operation=operation
            ) from e

        logger.debug(f"{method} {url} -> {response.status_code}")
        if response.is_error:
            raise ProcessingError(
                self._error_message(response),
                operation=operation,
                status_code=response.status_code,
                details=self._envelope(response).get("meta") or None,
            )
        return response

    async def _upload(self, artifact: Artifact, operation: str) -> tuple[str, bytes, str]:
        """Build the (filename, content, media type) tuple for an input artifact."""
        if artifact.is_table:
            name = artifact.name
            if Path(name).suffix.lower() != ".csv":
                name = f"{Path(name).stem}.csv"
            return name, artifact.table.to_csv(index=False).encode(), "text/csv"

        if artifact.is_text:
            return artifact.name, artifact.text.encode(), artifact.media_type or "text/plain"

        if artifact.path is not None:
            path = artifact.path if artifact.path.is_absolute() else self.base_path / artifact.path
            if not path.exists():
                raise ProcessingError(f"Input file not found: {path}", operation=operation)
            return artifact.name, path.read_bytes(), "application/octet-stream"

        if artifact.url:
            logger.debug(f"Downloading {artifact.url} before upload")
            return artifact.name, await self.download(artifact), "application/octet-stream"

        raise ProcessingError(f"Artifact {artifact.name} has no content", operation=operation)

    def _read_bind_file(self, bind_file: Optional[str], operation: str) -> tuple[str, bytes, str]:
        if not bind_file:
            raise ProcessingError("No file to bind from", operation=operation)
        path = Path(bind_file).expanduser()
        if not path.is_absolute():
            path = self.base_path / path
        if not path.exists():
            raise ProcessingError(f"Binding file not found: {path}", operation=operation)
        return path.name, path.read_bytes(), "application/octet-stream"

    @staticmethod
    def _envelope(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _error_message(self, response: httpx.Response) -> str:
        envelope = self._envelope(response)
        message = envelope.get("message") or envelope.get("detail")
        if not message:
            message = response.text.strip() or response.reason_phrase
        return f"Processing service error ({response.status_code}): {message}"

    def _to_artifact(
        self,
        response: httpx.Response,
        operation: str,
        output_filename: Optional[str],
    ) -> Artifact:
        envelope = self._envelope(response)
        data = envelope.get("data")
        if not isinstance(data, dict) or not data.get("download_url"):
            raise ProcessingError(
                "Processing service response has no download_url",
                operation=operation,
                status_code=response.status_code,
            )

        url = str(response.url.join(data["download_url"]))
        name = output_filename or name_from_url(url, f"{operation}-output")
        metadata = {k: v for k, v in data.items() if k != "download_url"}
        if envelope.get("message"):
            metadata["message"] = envelope["message"]
        artifact = Artifact.from_url(url, name)
        artifact.metadata.update(metadata)
        return artifact
