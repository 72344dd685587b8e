"""Runtime configuration for Tailnet Discovery.

Values come from environment variables; the CLI overrides them with flags.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_PROBE_TIMEOUT = 2.0
DEFAULT_PORT = 3000


@dataclass(frozen=True)
class Settings:
    db_path: Path
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    import_path: Path | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = Path(os.environ.get("TAILNET_DATA_DIR", "./data"))
        db_path = os.environ.get("TAILNET_DB_PATH")
        import_path = os.environ.get("TAILNET_IMPORT_CONFIG")
        return cls(
            db_path=Path(db_path) if db_path else data_dir / "services.db",
            host=os.environ.get("TAILNET_HOST", "0.0.0.0"),
            port=int(os.environ.get("TAILNET_PORT", str(DEFAULT_PORT))),
            probe_timeout=float(
                os.environ.get("TAILNET_PROBE_TIMEOUT", str(DEFAULT_PROBE_TIMEOUT))
            ),
            import_path=Path(import_path) if import_path else None,
            log_level=os.environ.get("TAILNET_LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with every non-``None`` value in *changes* applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
