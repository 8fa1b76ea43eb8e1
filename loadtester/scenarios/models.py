"""Pydantic models for replayable scenarios.

Field aliases match the scenario file format (``Name``, ``Endpoint``,
``MultiPartContents`` ...) so a scenario produced by the HAR converter loads
back unchanged. Models are frozen: a scenario is shared read-only by every
virtual user for the whole run.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_CONTENT_TYPE = "application/json"
MULTIPART_FORM_DATA = "multipart/form-data"
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class MultipartPart(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="Name")
    value: str | None = Field(default=None, alias="Value")
    file_name: str | None = Field(default=None, alias="FileName")
    content_type: str | None = Field(default=None, alias="ContentType")

    @property
    def is_file(self) -> bool:
        return bool(self.file_name)


class RequestSpec(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="Name")
    endpoint: str = Field(alias="Endpoint")
    method: str = Field(default="GET", alias="Method")
    headers: dict[str, str] = Field(default_factory=dict, alias="Headers")
    body: str | None = Field(default=None, alias="Body")
    multipart_parts: list[MultipartPart] = Field(default_factory=list, alias="MultiPartContents")
    is_multipart: bool = Field(default=False, alias="IsMultiPart")
    think_time_ms: int = Field(default=0, ge=0, alias="ThinkTimeMs")

    @field_validator("headers", "multipart_parts", mode="before")
    @classmethod
    def _null_as_empty(cls, value, info):
        if value is None:
            return {} if info.field_name == "headers" else []
        return value

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @property
    def content_type(self) -> str:
        """Effective body content type taken from the ``Content-Type`` header."""
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return DEFAULT_CONTENT_TYPE

    @property
    def uses_multipart(self) -> bool:
        return MULTIPART_FORM_DATA in self.content_type.lower()

    @property
    def has_body(self) -> bool:
        return bool(self.body) or len(self.multipart_parts) > 0

    @property
    def sends_body(self) -> bool:
        return self.has_body and self.method in BODY_METHODS


class Scenario(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    requests: list[RequestSpec] = Field(
        default_factory=list, validation_alias=AliasChoices("requests", "Requests")
    )
