"""
Configuration for the brokerage engine.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional


@dataclass
class DeskSettings:
    """
    Engine settings.

    Attributes:
        cash_category: Instrument category of the reserved cash instrument
        serialize_per_user: Run each user's order creations one at a time
        database_url: SQLAlchemy URL used by SqlStore
        read_isolation_level: Isolation level for portfolio reads
            (e.g. 'REPEATABLE READ'); None keeps the database default
        log_level: Root logging level
    """
    cash_category: str = "CURRENCY"
    serialize_per_user: bool = True
    database_url: str = "sqlite:///brokerage.db"
    read_isolation_level: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, config_dict: Mapping[str, Any]) -> "DeskSettings":
        """Create settings from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config_dict.items() if k in known})

    @classmethod
    def load(cls, config_path: str | Path = "config/brokerage.json") -> "DeskSettings":
        """Load settings from a JSON file."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_env(
        cls, prefix: str = "BROKERAGE_", environ: Optional[Mapping[str, str]] = None
    ) -> "DeskSettings":
        """Read settings from environment variables such as BROKERAGE_CASH_CATEGORY."""
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            if f.name == "serialize_per_user":
                values[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            else:
                values[f.name] = raw
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def configure_logging(settings: DeskSettings) -> None:
    """Install a basic stdlib logging configuration."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
