from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# Base directory of the project (one level above hardcover_prompts/)
BASE_DIR = Path(__file__).resolve().parent.parent


# ---------- API configuration ----------


@dataclass
class ApiConfig:
    """
    Settings for talking to Hardcover: the GraphQL endpoint for lists and
    lookups, and the web host that serves the prompt pages we scrape.
    """

    graphql_url: str = "https://api.hardcover.app/v1/graphql"
    host: str = "hardcover.app"
    user_agent: str = "hardcover-prompts/1.0"
    timeout_seconds: float = 15.0  # per-request HTTP timeout
    max_retries: int = 3
    retry_delay_seconds: float = 1.0  # pause between retry attempts

    @property
    def site_url(self) -> str:
        return f"https://{self.host}"


# ---------- Enrichment configuration ----------


@dataclass
class EnrichmentConfig:
    """
    How much we list and how hard we fan out when enriching.
    """

    # Rows requested from the answered-prompts query (newest first)
    list_limit: int = 50

    # Upper bound on simultaneous page fetches
    max_concurrency: int = 4

    # How often the collector wakes up to check for cancellation
    poll_interval_seconds: float = 0.1


# ---------- Paths configuration ----------


@dataclass
class PathsConfig:
    """
    Where the CLI writes its output.
    """

    data_dir: Path = BASE_DIR / "data"
    prompts_output_path: Path = data_dir / "answered_prompts.json"


# ---------- Credentials ----------


@dataclass
class HardcoverCredentials:
    """
    Opaque bearer credential for the Hardcover API.

    Acquisition and storage live elsewhere; we only attach the token
    to outgoing requests.
    """

    api_key: str

    @property
    def is_empty(self) -> bool:
        return not self.api_key.strip()

    @property
    def authorization_header(self) -> str:
        token = self.api_key.strip()
        if token.lower().startswith("bearer "):
            return token
        return f"Bearer {token}"

    @classmethod
    def from_env(cls) -> "HardcoverCredentials":
        """
        Load the credential from HARDCOVER_API_KEY.

        A missing variable yields an empty credential rather than None so
        callers can treat it as a soft failure at request time.
        """
        return cls(api_key=os.getenv("HARDCOVER_API_KEY", ""))


# ---------- Top-level application configuration ----------


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def get_config() -> AppConfig:
    """
    Main entrypoint to get the full application config.

    Environment overrides:
        HARDCOVER_API_URL, HARDCOVER_HOST,
        HARDCOVER_MAX_CONCURRENCY, HARDCOVER_TIMEOUT_SECONDS

    Usage:
        from hardcover_prompts.config import get_config
        cfg = get_config()
        cfg.enrichment.max_concurrency
    """
    cfg = AppConfig()

    cfg.api.graphql_url = os.getenv("HARDCOVER_API_URL", cfg.api.graphql_url)
    cfg.api.host = os.getenv("HARDCOVER_HOST", cfg.api.host)

    max_concurrency = _env_int("HARDCOVER_MAX_CONCURRENCY")
    if max_concurrency is not None and max_concurrency > 0:
        cfg.enrichment.max_concurrency = max_concurrency

    timeout = _env_float("HARDCOVER_TIMEOUT_SECONDS")
    if timeout is not None and timeout > 0:
        cfg.api.timeout_seconds = timeout

    return cfg
