"""
Configuration Loader for SAT Quest
Loads and validates settings from config.yaml, with environment overrides
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

PROJECT_DIR = Path(__file__).parent.parent

DEFAULTS: Dict[str, Any] = {
    "gamification": {
        "daily_quota": 5,
        "xp_per_correct": 10,
        "xp_per_attempt": 5,
        "sync_debounce_seconds": 10.0,
    },
    "storage": {
        "local_db_path": "satquest.db",
        "device_id_path": "device_id",
    },
    "remote": {
        "backend": "memory",
        "url": None,
        "key": None,
        "max_retries": 2,
    },
    "leaderboard": {
        "tie_break": "random",
        "max_members": 50,
        "page_size": 100,
    },
    "questions": {
        "path": None,
    },
}

TIE_BREAK_MODES = ("random", "stable")
REMOTE_BACKENDS = ("memory", "supabase")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration manager for SAT Quest."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration from YAML file.

        A missing file is not an error: every setting has a default.

        Args:
            config_path: Path to config.yaml (defaults to ./config.yaml)
        """
        if config_path is None:
            config_path = Path(os.environ.get("SATQUEST_CONFIG", PROJECT_DIR / "config.yaml"))

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file and apply environment overrides."""
        loaded: Dict[str, Any] = {}
        if self.config_path.exists():
            with open(self.config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"Config file must contain a mapping: {self.config_path}")

        config = _merge(DEFAULTS, loaded)

        if os.environ.get("SUPABASE_URL"):
            config["remote"]["url"] = os.environ["SUPABASE_URL"]
        if os.environ.get("SUPABASE_KEY"):
            config["remote"]["key"] = os.environ["SUPABASE_KEY"]

        self._validate_config(config)
        return config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate value ranges and enumerations."""
        gamification = config["gamification"]
        for field in ("daily_quota", "xp_per_correct", "xp_per_attempt"):
            value = gamification.get(field)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"gamification.{field} must be a non-negative integer")
        if gamification["daily_quota"] < 1:
            raise ValueError("gamification.daily_quota must be at least 1")
        if float(gamification["sync_debounce_seconds"]) < 0:
            raise ValueError("gamification.sync_debounce_seconds cannot be negative")

        remote = config["remote"]
        if remote["backend"] not in REMOTE_BACKENDS:
            raise ValueError(
                f"Unknown remote backend: {remote['backend']} "
                f"(expected one of: {', '.join(REMOTE_BACKENDS)})"
            )

        leaderboard = config["leaderboard"]
        if leaderboard["tie_break"] not in TIE_BREAK_MODES:
            raise ValueError(
                f"leaderboard.tie_break must be one of: {', '.join(TIE_BREAK_MODES)}"
            )
        max_members = leaderboard["max_members"]
        if not isinstance(max_members, int) or not 1 <= max_members <= 50:
            raise ValueError("leaderboard.max_members must be between 1 and 50")

    def _resolve_path(self, value: Optional[str]) -> Optional[Path]:
        if not value:
            return None
        path = Path(value)
        if not path.is_absolute():
            path = self.config_path.parent / path
        return path

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    # ===== GAMIFICATION =====

    @property
    def daily_quota(self) -> int:
        """Questions per day required to extend the day streak."""
        return self._config["gamification"]["daily_quota"]

    @property
    def xp_per_correct(self) -> int:
        return self._config["gamification"]["xp_per_correct"]

    @property
    def xp_per_attempt(self) -> int:
        """XP awarded for an incorrect answer."""
        return self._config["gamification"]["xp_per_attempt"]

    @property
    def sync_debounce_seconds(self) -> float:
        return float(self._config["gamification"]["sync_debounce_seconds"])

    # ===== STORAGE =====

    @property
    def local_db_path(self) -> Path:
        return self._resolve_path(self._config["storage"]["local_db_path"])

    @property
    def device_id_path(self) -> Path:
        return self._resolve_path(self._config["storage"]["device_id_path"])

    # ===== REMOTE =====

    @property
    def remote_backend(self) -> str:
        return self._config["remote"]["backend"]

    @property
    def supabase_url(self) -> Optional[str]:
        return self._config["remote"].get("url")

    @property
    def supabase_key(self) -> Optional[str]:
        return self._config["remote"].get("key")

    @property
    def remote_max_retries(self) -> int:
        return int(self._config["remote"].get("max_retries", 2))

    # ===== LEADERBOARD =====

    @property
    def tie_break(self) -> str:
        return self._config["leaderboard"]["tie_break"]

    @property
    def max_members(self) -> int:
        return self._config["leaderboard"]["max_members"]

    @property
    def page_size(self) -> int:
        return int(self._config["leaderboard"]["page_size"])

    # ===== QUESTIONS =====

    @property
    def questions_path(self) -> Optional[Path]:
        return self._resolve_path(self._config["questions"].get("path"))


_config: Optional[Config] = None


def get_config(config_path: Optional[Path] = None) -> Config:
    """Return the process configuration, loading it on first use."""
    global _config
    if config_path is not None:
        return Config(config_path)
    if _config is None:
        _config = Config()
    return _config
