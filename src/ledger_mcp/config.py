"""Runtime settings resolved from environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "ledger-mcp"


@dataclass(frozen=True)
class Settings:
    db_path: Path
    export_dir: Path
    log_level: str = "INFO"
    busy_timeout: float = 5.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from LEDGER_* variables, falling back to ~/.cache/ledger-mcp."""
        env = os.environ if environ is None else environ
        raw_timeout = env.get("LEDGER_BUSY_TIMEOUT", "5")
        try:
            busy_timeout = float(raw_timeout)
        except ValueError as e:
            raise ValueError(f"LEDGER_BUSY_TIMEOUT must be a number, got {raw_timeout!r}") from e

        return cls(
            db_path=Path(env.get("LEDGER_DB_PATH", DEFAULT_CACHE_DIR / "ledger.db")),
            export_dir=Path(env.get("LEDGER_EXPORT_DIR", DEFAULT_CACHE_DIR / "exports")),
            log_level=env.get("LEDGER_LOG_LEVEL", "INFO").upper(),
            busy_timeout=busy_timeout,
        )
