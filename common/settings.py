"""Environment-driven settings shared by the daemon and the CLIs."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_SERVICES_DIR = Path(__file__).resolve().parent.parent / "services"


class ConfigurationError(Exception):
    """Raised when the environment does not describe a runnable process."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


class Settings(BaseModel):
    """Process configuration, read from environment variables."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    environment: Literal["development", "production", "test"] = Field("development", alias="NODE_ENV")
    api_secret: str = Field(..., min_length=1, alias="INFERABLE_API_SECRET")
    api_endpoint: str = Field("https://api.inferable.ai", alias="INFERABLE_API_ENDPOINT")
    cluster_id: str | None = Field(None, alias="INFERABLE_CLUSTER_ID")
    port: int = Field(8173, ge=0, le=65535, alias="PORT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    services_dir: Path = Field(DEFAULT_SERVICES_DIR, alias="SERVICES_DIR")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {value!r}")
        return level

    def redacted_secret(self) -> str:
        return self.api_secret[:6] + "..."


def load_settings(environ: Mapping[str, str] | None = None, dotenv: bool = True) -> Settings:
    """
    Validate settings from ``environ`` (defaults to ``os.environ``).
    When reading the real environment, a ``.env`` file in the working
    directory is loaded first without overriding variables already set.
    """
    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ
    payload: dict[str, Any] = {k: v for k, v in environ.items() if v != ""}
    try:
        return Settings.model_validate(payload)
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            field = error["loc"][0] if error["loc"] else "?"
            problems.append(f"{field}: {error['msg']}")
        raise ConfigurationError(problems) from exc


__all__ = ["ConfigurationError", "DEFAULT_SERVICES_DIR", "Settings", "load_settings"]
