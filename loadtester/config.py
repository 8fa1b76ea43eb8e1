"""Application configuration via environment variables."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from loadtester import __version__


class Settings(BaseSettings):
    app_name: str = "loadtester"
    app_version: str = __version__
    log_level: str = "INFO"
    log_json: bool = False

    # Defaults for CLI flags that are not given explicitly
    default_concurrent_users: int = 10
    default_duration_seconds: float = 60.0
    default_ramp_up_seconds: float = 10.0

    # HTTP behaviour
    request_timeout_seconds: float = 30.0
    auth_scheme: str = "APIKEY"
    max_error_body_chars: int = 2000

    # HAR conversion
    har_default_think_time_ms: int = 1500

    model_config = {"env_prefix": "LOADTESTER_", "env_file": ".env", "extra": "ignore"}


class LoadTestConfig(BaseModel):
    """Immutable parameters of a single load-test run."""

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(min_length=1)
    api_key: str
    concurrent_users: int = Field(default=10, ge=1)
    duration_seconds: float = Field(default=60.0, gt=0)
    ramp_up_seconds: float = Field(default=10.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    auth_scheme: str = "APIKEY"
    max_error_body_chars: int = Field(default=2000, ge=0)

    @field_validator("base_url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got {value!r}")
        return value

    @property
    def authorization_header(self) -> str:
        return f"{self.auth_scheme} {self.api_key}"


settings = Settings()
