"""Single-request execution: build, send, time and classify one HTTP call."""

import base64
import binascii
import time
from datetime import timedelta
from pathlib import Path
from typing import Any

import httpx
import structlog

from loadtester.config import LoadTestConfig
from loadtester.scenarios.models import MultipartPart, RequestSpec

from .models import RequestResult

logger = structlog.get_logger()


def build_url(base_url: str, endpoint: str) -> str:
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def create_client(
    config: LoadTestConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Per-user client carrying the credential and the request timeout.

    The default transport never retries: a failed request is reported as such.
    """
    if transport is None:
        transport = httpx.AsyncHTTPTransport(retries=0)
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.request_timeout_seconds),
        headers={
            "Accept": "application/json",
            "Authorization": config.authorization_header,
        },
    )


def _is_base64(value: str) -> bool:
    value = value.strip()
    if not value:
        return False
    padded = value + "=" * (-len(value) % 4)
    try:
        base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def resolve_part_bytes(value: str | None) -> bytes:
    """Bytes of a file-like part: base64 payload, else a file on disk, else the text itself."""
    if not value:
        return b""
    if _is_base64(value):
        stripped = value.strip()
        return base64.b64decode(stripped + "=" * (-len(stripped) % 4))
    path = Path(value)
    try:
        is_file = path.is_file()
    except (OSError, ValueError):
        # Values too long or malformed for the filesystem are plain text.
        is_file = False
    if is_file:
        return path.read_bytes()
    return value.encode("utf-8")


def build_multipart_files(parts: list[MultipartPart]) -> list[tuple[str, tuple[Any, ...]]]:
    """httpx ``files=`` entries, one per part, in scenario order."""
    files: list[tuple[str, tuple[Any, ...]]] = []
    for part in parts:
        if part.is_file:
            try:
                content = resolve_part_bytes(part.value)
            except OSError as exc:
                logger.warning("multipart_file_unreadable", part=part.name, error=str(exc))
                files.append((part.name, (None, (part.value or "").encode("utf-8"))))
                continue
            entry: tuple[Any, ...] = (part.file_name, content)
        else:
            entry = (None, (part.value or "").encode("utf-8"))
        if part.content_type:
            entry = (*entry, part.content_type)
        files.append((part.name, entry))
    return files


class RequestExecutor:
    """Issues the requests of one virtual user over that user's client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        max_error_body_chars: int = 2000,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self._max_error_body_chars = max_error_body_chars

    def build_request(self, spec: RequestSpec) -> httpx.Request:
        url = build_url(self._base_url, spec.endpoint)
        headers = {k: v for k, v in spec.headers.items() if k.lower() != "content-type"}
        content_type = spec.content_type

        if not spec.sends_body:
            return self._client.build_request(spec.method, url, headers=headers)

        if spec.uses_multipart:
            # httpx generates the multipart Content-Type with its own boundary.
            return self._client.build_request(
                spec.method,
                url,
                headers=headers,
                files=build_multipart_files(spec.multipart_parts),
            )

        headers["Content-Type"] = content_type
        return self._client.build_request(
            spec.method,
            url,
            headers=headers,
            content=(spec.body or "").encode("utf-8"),
        )

    async def execute(self, spec: RequestSpec, user_id: int | None = None) -> RequestResult:
        """Send one request; every failure is folded into the returned result.

        Only the network exchange is timed. A request that could not be built
        never reached the server and reports a zero duration.
        """
        t0: float | None = None
        status_code = 0
        success = False
        error: str | None = None
        try:
            request = self.build_request(spec)
            t0 = time.perf_counter()
            response = await self._client.send(request)
            status_code = response.status_code
            success = response.is_success
            if not success:
                error = response.text[: self._max_error_body_chars]
        except httpx.HTTPError as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.debug("request_transport_error", request=spec.name, error=error)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.warning("request_build_error", request=spec.name, error=error)
        elapsed = timedelta(0) if t0 is None else timedelta(seconds=time.perf_counter() - t0)

        return RequestResult(
            request_name=spec.name,
            success=success,
            status_code=status_code,
            duration=elapsed,
            error=error,
            user_id=user_id,
        )
