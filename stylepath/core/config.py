import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Style vectors
    STYLE_VECTOR_DIM: int = 512
    STYLE_VECTOR_ALPHA: float = 0.95  # EMA decay, weight kept by the old vector

    # Unlock notifications (optional downstream hook)
    UNLOCK_WEBHOOK_URL: Optional[str] = None
    UNLOCK_WEBHOOK_TIMEOUT_SECONDS: float = 5.0

    # App URLs
    BASE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Only production requires a database; development and tests run on the
    in-memory store.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("stylepath")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    problems = []
    if str(getattr(cfg, "ENV", "development")).lower() == "production" and not getattr(cfg, "DATABASE_URL", None):
        problems.append("Missing required configuration: DATABASE_URL")

    dim = getattr(cfg, "STYLE_VECTOR_DIM", 512)
    if dim <= 0:
        problems.append(f"STYLE_VECTOR_DIM must be positive, got {dim}")

    alpha = getattr(cfg, "STYLE_VECTOR_ALPHA", 0.95)
    if not 0.0 < alpha < 1.0:
        problems.append(f"STYLE_VECTOR_ALPHA must be in (0, 1), got {alpha}")

    for message in problems:
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return not problems
