import os
from typing import Optional

from aws_lambda_powertools import Logger
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import entities


def get_logger(service: Optional[str] = None, level: Optional[str] = None) -> Logger:
    kwargs = {
        "json_default": entities.json_default,
        "level": level or os.environ.get("LOG_LEVEL", "INFO"),
    }
    if service:
        kwargs["service"] = service
    return Logger(**kwargs)


logger = get_logger(service="config")

# IAM GetGroup accepts MaxItems in 1..1000 and defaults to 100.
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000


class Config(BaseSettings):
    model_config = SettingsConfigDict(frozen=True)

    log_level: str = "INFO"

    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    retry_timeout_seconds: float = Field(default=60, gt=0)
    retry_initial_wait_seconds: float = Field(default=1, gt=0)
    retry_max_wait_seconds: float = Field(default=10, gt=0)
    retry_max_attempts: int = Field(default=10, ge=1)

    convergence_timeout_seconds: float = Field(default=60, gt=0)
    destroy_verification_timeout_seconds: float = Field(default=60, gt=0)

    apply_max_workers: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_wait_bounds(self):  # noqa: ANN201, ANN101
        if self.retry_initial_wait_seconds > self.retry_max_wait_seconds:
            raise ValueError("retry_initial_wait_seconds must not exceed retry_max_wait_seconds")
        return self


_config: Optional[Config] = None


def get_config() -> Config:
    global _config  # noqa: PLW0603
    if _config is None:
        _config = Config()  # type: ignore # noqa: PGH003
        logger.debug("Configuration loaded", extra={"config": _config})
    return _config
