"""Application configuration contract."""

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from apexcov.errors import ConfigError

MAX_BATCH_SIZE = 200


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = Field(alias="APEXCOV_LOG_LEVEL", default="INFO")
    log_json: int = Field(alias="APEXCOV_LOG_JSON", default=0)
    http_timeout_seconds: float = Field(alias="APEXCOV_HTTP_TIMEOUT_SECONDS", default=60.0)
    operation_timeout_seconds: float = Field(
        alias="APEXCOV_OPERATION_TIMEOUT_SECONDS", default=600.0
    )
    batch_size: int = Field(alias="APEXCOV_BATCH_SIZE", default=MAX_BATCH_SIZE)
    strategy: str = Field(alias="APEXCOV_STRATEGY", default="MaxCoverage")


class Credentials(BaseModel):
    """Org connection details read from the credentials file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(alias="apiVersion")
    base_url: str = Field(alias="baseUrl")
    client_id: str = Field(alias="clientId")
    client_secret: str = Field(alias="clientSecret")

    @field_validator("api_version", "base_url", "client_id", "client_secret")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


def validate_settings(settings: Settings) -> None:
    if not 1 <= settings.batch_size <= MAX_BATCH_SIZE:
        raise ConfigError(
            f"invalid configuration: APEXCOV_BATCH_SIZE must be within 1..{MAX_BATCH_SIZE}"
        )
    if settings.http_timeout_seconds <= 0 or settings.operation_timeout_seconds <= 0:
        raise ConfigError("invalid configuration: timeouts must be > 0")


def load_credentials(path: str | Path) -> Credentials:
    config_path = Path(path).expanduser()
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"failed to read config {config_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config {config_path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"config {config_path} must be a JSON object")
    try:
        return Credentials.model_validate(payload)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ConfigError(
            f"missing required parameters in config {config_path}: {', '.join(fields)}"
        ) from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
