"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


# Shell assets pre-warmed at install time (same-origin paths or absolute URLs)
DEFAULT_PRECACHE_URLS = [
    "/",
    "/index.html",
    "/neurophysiology_multilingual.html",
    "/manifest.json",
    "https://cdn.tailwindcss.com",
    "https://cdn.jsdelivr.net/npm/chart.js@4.4.0/dist/chart.umd.js",
    "https://cdnjs.cloudflare.com/ajax/libs/jspdf/2.5.1/jspdf.umd.min.js",
    "https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.0.0/css/all.min.css",
    "https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap",
]


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    # Upstream case tracker API (the origin pages believe they talk to)
    origin: str = "http://localhost:3000"
    api_prefix: str = "/api/"

    # Cache generation. Bumping the version evicts every older store on activate.
    cache_version: str = "v1.0.0"
    cache_prefix: str = "casetrack"
    cache_database_url: str = "sqlite:///./cache/offline_cache.db"

    # Durable mutation queue
    queue_db_path: Path = Path("./cache/sync_queue.db")

    # Static shell
    precache_urls: List[str] = DEFAULT_PRECACHE_URLS
    app_shell_path: str = "/neurophysiology_multilingual.html"
    static_extensions: List[str] = [
        ".js", ".css", ".png", ".jpg", ".jpeg", ".svg", ".ico",
        ".woff", ".woff2", ".webmanifest",
    ]

    # Lifecycle
    skip_waiting_on_install: bool = True

    # Sync triggers
    sync_tag: str = "background-sync"
    periodic_sync_tag: str = "case-periodic-sync"
    periodic_sync_interval_seconds: int = 900  # 0 disables the loop

    # Performance reporting
    performance_report_interval_seconds: int = 60  # 0 disables the loop

    # Transport (None keeps the httpx default)
    network_timeout_seconds: Optional[float] = None

    # Host
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
