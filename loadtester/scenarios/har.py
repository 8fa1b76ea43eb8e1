"""HAR (HTTP archive) to scenario conversion.

Browser captures are filtered down to API-like calls and turned into a
replayable :class:`Scenario`. Think time between requests is derived from
the capture's own timestamps.
"""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .loader import save_scenario
from .models import MULTIPART_FORM_DATA, MultipartPart, RequestSpec, Scenario

logger = structlog.get_logger()

URL_PATTERNS: tuple[str, ...] = ("/api", "/Lucy/", "/hook/", "/Services", "/components/")

ALLOWED_CONTENT_TYPES: tuple[str, ...] = (
    "application/json",
    "text/json",
    "application/xml",
    "text/xml",
    "text/plain",
    "multipart/form-data",
)

MAX_THINK_TIME_MS = 30_000
DEFAULT_THINK_TIME_MS = 1_500

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]+)"|([^\s;]+))')
_DISPOSITION_RE = re.compile(
    r'Content-Disposition:\s*form-data;\s*name="([^"]+)"(?:;\s*filename="([^"]+)")?',
    re.IGNORECASE,
)
_PART_CONTENT_TYPE_RE = re.compile(r"Content-Type:\s*([^\r\n]+)", re.IGNORECASE)
_PART_VALUE_RE = re.compile(r"\r?\n\r?\n([\s\S]+)$")


class HarConversionError(ValueError):
    """Raised when a document is not a usable HAR capture."""


# ---------------------------------------------------------------------------
# HAR document models (only the fields the converter reads)
# ---------------------------------------------------------------------------


class _HarModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class HarHeader(_HarModel):
    name: str
    value: str = ""


class HarPostParam(_HarModel):
    name: str
    value: str | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    content_type: str | None = Field(default=None, alias="contentType")


class HarPostData(_HarModel):
    text: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    params: list[HarPostParam] | None = None


class HarRequest(_HarModel):
    method: str = "GET"
    url: str
    headers: list[HarHeader] = Field(default_factory=list)
    post_data: HarPostData | None = Field(default=None, alias="postData")


class HarResponse(_HarModel):
    status: int = 0
    headers: list[HarHeader] = Field(default_factory=list)


class HarEntry(_HarModel):
    started_date_time: str | None = Field(default=None, alias="startedDateTime")
    request: HarRequest | None = None
    response: HarResponse | None = None


class HarLog(_HarModel):
    entries: list[HarEntry]


class HarDocument(_HarModel):
    log: HarLog


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _header(headers: list[HarHeader], name: str) -> str | None:
    for header in headers:
        if header.name.lower() == name.lower():
            return header.value
    return None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def extract_endpoint(url: str) -> str:
    """Path plus query of *url*; the raw string when it is not an absolute URL."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url
    endpoint = parts.path or "/"
    if parts.query:
        endpoint = f"{endpoint}?{parts.query}"
    return endpoint


def name_from_endpoint(endpoint: str) -> str:
    """``/api/user-items?x=1`` -> ``ApiUserItems``."""
    path = endpoint.split("?", 1)[0]
    segments = [s for s in re.split(r"[/\-_]", path) if s]
    if not segments:
        return ""
    name = segments[0] + "".join(s[0].upper() + s[1:] for s in segments[1:])
    return name[0].upper() + name[1:]


def extract_relevant_headers(headers: list[HarHeader]) -> dict[str, str]:
    """Keep ``Authorization``, ``Content-Type`` and ``X-*`` headers."""
    relevant: dict[str, str] = {}
    for header in headers:
        lowered = header.name.lower()
        if lowered in ("authorization", "content-type") or lowered.startswith("x-"):
            relevant[header.name] = header.value
    return relevant


def parse_multipart_text(text: str, content_type: str) -> list[MultipartPart]:
    """Recover form parts from a raw multipart body captured as text."""
    match = _BOUNDARY_RE.search(content_type)
    if not match:
        return []
    boundary = match.group(1) or match.group(2)

    parts: list[MultipartPart] = []
    for chunk in text.split(f"--{boundary}"):
        if not chunk.strip() or chunk.strip().startswith("--"):
            continue
        disposition = _DISPOSITION_RE.search(chunk)
        if not disposition:
            continue
        part_type = _PART_CONTENT_TYPE_RE.search(chunk)
        value = _PART_VALUE_RE.search(chunk)
        parts.append(
            MultipartPart(
                name=disposition.group(1),
                file_name=disposition.group(2),
                content_type=part_type.group(1).strip() if part_type else None,
                value=value.group(1).strip() if value else "",
            )
        )
    return parts


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------


class HarConverter:
    """Turns a HAR capture into a scenario of API calls."""

    def __init__(
        self,
        default_think_time_ms: int = DEFAULT_THINK_TIME_MS,
        url_patterns: tuple[str, ...] = URL_PATTERNS,
        content_types: tuple[str, ...] = ALLOWED_CONTENT_TYPES,
    ) -> None:
        self.default_think_time_ms = default_think_time_ms
        self.url_patterns = tuple(p.lower() for p in url_patterns)
        self.content_types = tuple(t.lower() for t in content_types)

    def is_relevant(self, entry: HarEntry) -> bool:
        if entry.request is None or entry.response is None:
            return False
        url = entry.request.url.lower()
        if not any(pattern in url for pattern in self.url_patterns):
            return False
        if not 200 <= entry.response.status < 400:
            return False
        content_type = _header(entry.response.headers, "Content-Type")
        if content_type is None:
            return False
        return any(allowed in content_type.lower() for allowed in self.content_types)

    def think_times(self, entries: list[HarEntry]) -> list[int]:
        """Delay after each entry: the gap to the next capture, last one 0."""
        stamps = [_parse_timestamp(e.started_date_time) for e in entries]
        result: list[int] = []
        for current, following in zip(stamps, stamps[1:]):
            think = self.default_think_time_ms
            # Naive and aware stamps cannot be compared; fall back to the default.
            if (
                current is not None
                and following is not None
                and (current.tzinfo is None) == (following.tzinfo is None)
            ):
                gap_ms = (following - current).total_seconds() * 1000
                if 0 < gap_ms < MAX_THINK_TIME_MS:
                    think = int(gap_ms)
            result.append(think)
        if entries:
            result.append(0)
        return result

    def convert_entry(self, entry: HarEntry, think_time_ms: int) -> RequestSpec:
        request = entry.request
        if request is None:
            raise HarConversionError("HAR entry has no request")
        endpoint = extract_endpoint(request.url)
        request_type = _header(request.headers, "Content-Type") or ""
        is_multipart = MULTIPART_FORM_DATA in request_type.lower()
        post_data = request.post_data

        body: str | None = None
        parts: list[MultipartPart] = []
        if is_multipart:
            parts = self._multipart_parts(post_data, request_type)
        elif post_data is not None and post_data.text:
            body = post_data.text

        return RequestSpec(
            name=name_from_endpoint(endpoint),
            endpoint=endpoint,
            method=request.method,
            headers=extract_relevant_headers(request.headers),
            body=body,
            multipart_parts=parts,
            is_multipart=is_multipart,
            think_time_ms=think_time_ms,
        )

    @staticmethod
    def _multipart_parts(post_data: HarPostData | None, content_type: str) -> list[MultipartPart]:
        if post_data is None:
            return []
        if post_data.params is not None:
            return [
                MultipartPart(
                    name=p.name,
                    value=p.value,
                    file_name=p.file_name,
                    content_type=p.content_type,
                )
                for p in post_data.params
            ]
        if post_data.text:
            return parse_multipart_text(post_data.text, content_type)
        return []

    def convert(self, document: HarDocument | dict[str, Any]) -> Scenario:
        if not isinstance(document, HarDocument):
            try:
                document = HarDocument.model_validate(document)
            except ValidationError as exc:
                raise HarConversionError(f"invalid HAR document: {exc}") from exc

        entries = [e for e in document.log.entries if self.is_relevant(e)]
        logger.info(
            "har_entries_filtered",
            total=len(document.log.entries),
            relevant=len(entries),
        )
        think_times = self.think_times(entries)
        return Scenario(
            requests=[self.convert_entry(e, t) for e, t in zip(entries, think_times)]
        )

    def convert_file(self, har_path: str | Path, output_path: str | Path) -> Scenario:
        har_path = Path(har_path)
        try:
            document = json.loads(har_path.read_text(encoding="utf-8-sig"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise HarConversionError(f"cannot read HAR file {har_path}: {exc}") from exc

        scenario = self.convert(document)
        save_scenario(scenario, output_path)
        return scenario
