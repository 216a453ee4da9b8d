import json
import os
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "WishSync API"
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        return [item.strip() for item in raw.split(",") if item.strip()]

    # Document store: sqlite+aiosqlite:///./wishsync.db (dev) | postgresql+asyncpg://... (prod)
    database_dsn: str = "sqlite+aiosqlite:///./wishsync.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30

    # Device-local key-value file holding the identity and the followed lists
    prefs_path: str = "~/.wishsync/prefs.json"

    # Share links: https://<share_host>/<share_path>?id=... and <app_scheme>://<share_host>?id=...
    share_host: str = "wishproject-27a8b.web.app"
    share_path: str = "partage"
    app_scheme: str = "wishproject"

    # "conditional" compares against the state the guest saw before writing;
    # "last_write_wins" lets the later of two racing toggles decide.
    reservation_writes: Literal["conditional", "last_write_wins"] = "conditional"

    log_level: str = "INFO"
    log_file: str = ""

    @property
    def conditional_reservations(self) -> bool:
        return self.reservation_writes == "conditional"


settings = Settings()
