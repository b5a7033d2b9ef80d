"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_MAX_DEPTH = 5
DEFAULT_STORAGE_URL = "http://127.0.0.1:8000/history"


def _get_default_db_path() -> Path:
    """Get the default history database path."""
    # When running from a checkout, prefer local data/ if it exists
    local_db = Path("data/layersizes.db")
    if local_db.exists():
        return local_db

    return Path.home() / ".local" / "share" / "layersizes" / "history.db"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    max_depth: int = DEFAULT_MAX_DEPTH
    storage_url: str = DEFAULT_STORAGE_URL
    request_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
