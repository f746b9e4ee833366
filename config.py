import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

TOKEN_KINDS = ("company", "primary", "webhook")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_list(name: str, default: str) -> List[str]:
    return [part.strip() for part in os.getenv(name, default).split(",") if part.strip()]


class Settings(BaseModel):
    """Service configuration, read from the environment once per process."""

    database_url: Optional[str] = None
    database_name: Optional[str] = None

    fluid_domain: str = "fluid.app"
    fluid_global_host: str = "api.fluid.app"
    api_version: str = "v202506"
    legacy_api_version: str = "v1"

    page_size: int = Field(50, ge=1, le=250)
    batch_size: int = Field(100, ge=1)
    request_timeout: float = Field(30, gt=0)
    # 0 disables the total run deadline
    run_timeout: float = Field(600, ge=0)
    token_priority: List[str] = Field(default_factory=lambda: list(TOKEN_KINDS))

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000

    @field_validator("token_priority")
    @classmethod
    def _known_token_kinds(cls, value: List[str]) -> List[str]:
        unknown = [kind for kind in value if kind not in TOKEN_KINDS]
        if unknown:
            raise ValueError(f"unknown token kinds: {', '.join(unknown)}")
        if not value:
            raise ValueError("token priority must name at least one token kind")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            fluid_domain=os.getenv("FLUID_DOMAIN", "fluid.app"),
            fluid_global_host=os.getenv("FLUID_GLOBAL_HOST", "api.fluid.app"),
            api_version=os.getenv("FLUID_API_VERSION", "v202506"),
            legacy_api_version=os.getenv("FLUID_LEGACY_API_VERSION", "v1"),
            page_size=_env_int("SYNC_PAGE_SIZE", 50),
            batch_size=_env_int("SYNC_BATCH_SIZE", 100),
            request_timeout=_env_int("SYNC_REQUEST_TIMEOUT", 30),
            run_timeout=_env_int("SYNC_RUN_TIMEOUT", 600),
            token_priority=_env_list("TOKEN_PRIORITY", ",".join(TOKEN_KINDS)),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=_env_int("PORT", 8000),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
