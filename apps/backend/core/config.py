"""
Scraper configuration.

All runtime settings are resolved here once, from environment variables and an
optional `.env` file, and then passed explicitly into each component.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://wellfound.com"
DEFAULT_RATE_LIMIT = 1.5  # requests per second
DEFAULT_MAX_PAGES = 10
DEFAULT_CONCURRENCY = 3
DEFAULT_BATCH_TIMEOUT = 30 * 60.0  # seconds
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 60.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Local development database, used when DATABASE_URL is not set
DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_PORT = 5432
DEFAULT_DB_NAME = "cursor_jobs"
DEFAULT_DB_USERNAME = "cursor"
DEFAULT_DB_PASSWORD = "cursor_password"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[config] Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[config] Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _database_url_from_env() -> str:
    """DATABASE_URL wins; otherwise build one from the DB_* variables."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    user = os.getenv("DB_USERNAME", DEFAULT_DB_USERNAME)
    password = os.getenv("DB_PASSWORD", DEFAULT_DB_PASSWORD)
    host = os.getenv("DB_HOST", DEFAULT_DB_HOST)
    port = _env_int("DB_PORT", DEFAULT_DB_PORT)
    name = os.getenv("DB_NAME", DEFAULT_DB_NAME)
    return f"postgresql://{quote(user)}:{quote(password)}@{host}:{port}/{name}"


@dataclass(frozen=True)
class ScraperSettings:
    """Resolved settings for one scraper run."""

    base_url: str = DEFAULT_BASE_URL
    rate_limit: float = DEFAULT_RATE_LIMIT
    max_pages: int = DEFAULT_MAX_PAGES
    concurrency: int = DEFAULT_CONCURRENCY
    batch_timeout: float = DEFAULT_BATCH_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    write_timeout: float = DEFAULT_WRITE_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    database_url: Optional[str] = None

    @property
    def startups_url(self) -> str:
        return f"{self.base_url}/startups"

    def listing_url(self, page: int) -> str:
        return f"{self.startups_url}?page={page}"

    def company_url(self, slug: str) -> str:
        return f"{self.base_url}/company/{slug}"

    def jobs_url(self, slug: str) -> str:
        return f"{self.company_url(slug)}/jobs"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ScraperSettings":
        """
        Build settings from the environment.

        A `.env` file (explicit path, or discovered from the working directory)
        is loaded first without overriding variables that are already set.
        """
        load_dotenv(env_file, override=False)

        settings = cls(
            base_url=os.getenv("SCRAPER_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            rate_limit=_env_float("SCRAPER_RATE_LIMIT", DEFAULT_RATE_LIMIT),
            max_pages=_env_int("SCRAPER_MAX_PAGES", DEFAULT_MAX_PAGES),
            concurrency=_env_int("SCRAPER_CONCURRENCY", DEFAULT_CONCURRENCY),
            batch_timeout=_env_float("SCRAPER_BATCH_TIMEOUT", DEFAULT_BATCH_TIMEOUT),
            connect_timeout=_env_float("SCRAPER_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT),
            read_timeout=_env_float("SCRAPER_READ_TIMEOUT", DEFAULT_READ_TIMEOUT),
            write_timeout=_env_float("SCRAPER_WRITE_TIMEOUT", DEFAULT_WRITE_TIMEOUT),
            user_agent=os.getenv("SCRAPER_USER_AGENT", DEFAULT_USER_AGENT),
            database_url=_database_url_from_env(),
        )
        logger.debug(
            f"[config] base_url={settings.base_url} rate={settings.rate_limit}/s "
            f"concurrency={settings.concurrency} max_pages={settings.max_pages}"
        )
        return settings
