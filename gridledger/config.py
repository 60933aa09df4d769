"""
Client configuration.

Values come from keyword arguments, or from the environment via from_env():

    GRID_DAEMON_ENDPOINT   REST gateway URL (default http://localhost:8000)
    GRID_DAEMON_KEY        key file stem used to sign (default: current user)
    GRID_KEY_DIR           directory holding key files (default ~/.grid/keys)
    GRID_WAIT              seconds to wait for batch commit (default 0)
    GRID_LOG_LEVEL         logging level name (default WARNING)
    GRID_MAX_PAYLOAD_SIZE  payload size limit in bytes (default 1 MiB)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from gridledger.crypto.signing import DEFAULT_KEY_DIR
from gridledger.ledger.transaction import MAX_PAYLOAD_SIZE

DEFAULT_ENDPOINT = "http://localhost:8000"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class GridConfig:
    """Configuration for the gridctl client."""

    url: str = DEFAULT_ENDPOINT
    key_name: Optional[str] = None
    key_dir: Path = field(default_factory=lambda: DEFAULT_KEY_DIR)
    wait: int = 0
    log_level: str = "WARNING"
    max_payload_size: int = MAX_PAYLOAD_SIZE

    @classmethod
    def from_env(cls) -> "GridConfig":
        """
        Load configuration from environment variables.

        Raises:
            ValueError: If a numeric variable is not an integer
        """
        def int_var(name: str, default: int) -> int:
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError as err:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from err

        return cls(
            url=os.getenv("GRID_DAEMON_ENDPOINT", DEFAULT_ENDPOINT),
            key_name=os.getenv("GRID_DAEMON_KEY") or None,
            key_dir=Path(os.getenv("GRID_KEY_DIR", str(DEFAULT_KEY_DIR))),
            wait=int_var("GRID_WAIT", 0),
            log_level=os.getenv("GRID_LOG_LEVEL", "WARNING").upper(),
            max_payload_size=int_var("GRID_MAX_PAYLOAD_SIZE", MAX_PAYLOAD_SIZE),
        )

    def validate(self) -> None:
        """Validate configuration parameters."""
        errors = []

        if not self.url.startswith(("http://", "https://")):
            errors.append(f"url must start with http:// or https://, got {self.url!r}")

        if self.wait < 0:
            errors.append(f"wait must be >=0, got {self.wait}")

        if self.log_level not in _LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {self.log_level!r}")

        if self.max_payload_size <= 0:
            errors.append(f"max_payload_size must be >0, got {self.max_payload_size}")

        if errors:
            raise ValueError("Invalid grid configuration:\n" + "\n".join(f"  - {e}" for e in errors))

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)
