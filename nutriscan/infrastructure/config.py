"""Configuration utilities for the scan core."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


class ScanSettings(BaseModel):
    """
    Runtime settings for the scan services.

    Defaults mirror the timings the mobile client used: 50ms batching,
    30s existence checks, 2 minutes per product, 5 minutes per favorite
    flag, a cache sweep every 5 minutes.
    """

    model_config = ConfigDict(frozen=True)

    batch_window_ms: float = Field(default=50.0, ge=0, description="Coalescing window")
    existence_ttl_s: float = Field(default=30.0, gt=0, description="Existence check TTL")
    product_ttl_s: float = Field(default=120.0, gt=0, description="Product-by-id TTL")
    recent_ttl_s: float = Field(default=30.0, gt=0, description="Recent products TTL")
    favorite_ttl_s: float = Field(default=300.0, gt=0, description="Favorite status TTL")
    cache_sweep_s: float = Field(default=300.0, gt=0, description="Expired entry sweep interval")

    off_timeout_s: float = Field(default=10.0, gt=0, description="OpenFoodFacts request timeout")
    off_max_retries: int = Field(default=3, ge=1, description="OpenFoodFacts retry attempts")

    repository_backend: str = Field(default="inmemory", pattern=r"^(inmemory|mongodb)$")
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "nutriscan"

    log_level: str = "INFO"
    log_json: bool = False

    @property
    def batch_window_seconds(self) -> float:
        """Coalescing window in seconds."""
        return self.batch_window_ms / 1000.0


def get_mongodb_uri() -> Optional[str]:
    """
    Get MongoDB URI with environment variable expansion.

    Expands ${MONGODB_USER} and ${MONGODB_PASSWORD} placeholders in
    MONGODB_URI so credentials can live separately in .env.

    Returns:
        Expanded MongoDB URI string, or None if not set
    """
    uri_template = os.getenv("MONGODB_URI")
    if not uri_template:
        return None

    user = os.getenv("MONGODB_USER", "")
    password = os.getenv("MONGODB_PASSWORD", "")

    uri = uri_template.replace("${MONGODB_USER}", user)
    uri = uri.replace("${MONGODB_PASSWORD}", password)

    return uri


def get_mongodb_database() -> str:
    """
    Get MongoDB database name.

    Returns:
        Database name from MONGODB_DATABASE env var, defaults to "nutriscan"
    """
    return os.getenv("MONGODB_DATABASE", "nutriscan")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings(env_file: Optional[Path] = None) -> ScanSettings:
    """
    Build settings from environment variables.

    Args:
        env_file: Optional .env file loaded first (existing variables win)

    Returns:
        Validated ScanSettings

    Raises:
        pydantic.ValidationError: On malformed values
    """
    if env_file is not None:
        load_dotenv(env_file)

    return ScanSettings(
        batch_window_ms=float(os.getenv("SCAN_BATCH_WINDOW_MS", "50")),
        existence_ttl_s=float(os.getenv("SCAN_EXISTENCE_TTL_S", "30")),
        product_ttl_s=float(os.getenv("SCAN_PRODUCT_TTL_S", "120")),
        recent_ttl_s=float(os.getenv("SCAN_RECENT_TTL_S", "30")),
        favorite_ttl_s=float(os.getenv("SCAN_FAVORITE_TTL_S", "300")),
        cache_sweep_s=float(os.getenv("SCAN_CACHE_SWEEP_S", "300")),
        off_timeout_s=float(os.getenv("OFF_TIMEOUT_S", "10")),
        off_max_retries=int(os.getenv("OFF_MAX_RETRIES", "3")),
        repository_backend=os.getenv("REPOSITORY_BACKEND", "inmemory").lower(),
        mongodb_uri=get_mongodb_uri(),
        mongodb_database=get_mongodb_database(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON", False),
    )
