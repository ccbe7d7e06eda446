"""
Central configuration for the TabGuard policy engine.
All values can be overridden via environment variables or a local config.json.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

_ROOT = Path(__file__).parent.parent
_CONFIG_FILE = _ROOT / "config.json"


@dataclass
class Config:
    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    # Scheduling
    schedule_check_interval_s: int = 60      # schedule tick period

    # Policy
    default_tab_limit: int = 10              # used when no limit_tabs rule matches

    # Storage
    data_dir: Path = field(default_factory=lambda: _ROOT / "data")

    # Notifications
    notifier: str = "log"                    # "log" or "desktop"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls) -> "Config":
        cfg = cls()
        if _CONFIG_FILE.exists():
            overrides = json.loads(_CONFIG_FILE.read_text())
            for k, v in overrides.items():
                if hasattr(cfg, k):
                    setattr(cfg, k, v)
        # environment variable overrides (TG_*)
        for k in cfg.__dataclass_fields__:  # type: ignore[attr-defined]
            env_key = f"TG_{k.upper()}"
            if env_key in os.environ:
                setattr(cfg, k, type(getattr(cfg, k))(os.environ[env_key]))
        cfg.data_dir = Path(cfg.data_dir)
        return cfg


# Module-level singleton
config = Config.load()
