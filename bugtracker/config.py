"""
Bugtracker Configuration

Centralized configuration for the issue tracker.

Settings come from an optional YAML file (path in BUGTRACKER_CONFIG) and are
overridden by BUGTRACKER_* environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

PROJECT_ROOT = Path(__file__).parent.parent


# =============================================================================
# Storage Configuration
# =============================================================================

DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "issues.db"

REPOSITORY_BACKENDS = ("sqlite", "memory")
DEFAULT_REPOSITORY = "sqlite"

# How many times IssueManager reloads and reapplies a change after a
# concurrent update was detected.
DEFAULT_MAX_STORE_RETRIES = 3


# =============================================================================
# Lifecycle Configuration
# =============================================================================

RECIPROCAL_GUARDS = ("assignee", "argument")
DEFAULT_RECIPROCAL_GUARD = "assignee"


# =============================================================================
# Logging Configuration
# =============================================================================

DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


CONFIG_FILE_ENV = "BUGTRACKER_CONFIG"

ENV_OVERRIDES = {
    "db_path": "BUGTRACKER_DB_PATH",
    "repository": "BUGTRACKER_REPOSITORY",
    "reciprocal_link_guard": "BUGTRACKER_RECIPROCAL_GUARD",
    "max_store_retries": "BUGTRACKER_MAX_STORE_RETRIES",
    "log_level": "BUGTRACKER_LOG_LEVEL",
}


@dataclass
class Settings:
    """Resolved runtime settings."""
    db_path: str = field(default_factory=lambda: str(DEFAULT_DB_PATH))
    repository: str = DEFAULT_REPOSITORY
    reciprocal_link_guard: str = DEFAULT_RECIPROCAL_GUARD
    max_store_retries: int = DEFAULT_MAX_STORE_RETRIES
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Create settings from dictionary, validating enumerated values."""
        repository = str(data.get("repository", DEFAULT_REPOSITORY)).lower()
        if repository not in REPOSITORY_BACKENDS:
            raise ValueError(
                f"Unknown repository '{repository}', expected one of {REPOSITORY_BACKENDS}"
            )

        guard = str(data.get("reciprocal_link_guard", DEFAULT_RECIPROCAL_GUARD)).lower()
        if guard not in RECIPROCAL_GUARDS:
            raise ValueError(
                f"Unknown reciprocal link guard '{guard}', expected one of {RECIPROCAL_GUARDS}"
            )

        return cls(
            db_path=str(data.get("db_path", DEFAULT_DB_PATH)),
            repository=repository,
            reciprocal_link_guard=guard,
            max_store_retries=int(data.get("max_store_retries", DEFAULT_MAX_STORE_RETRIES)),
            log_level=str(data.get("log_level", DEFAULT_LOG_LEVEL)).upper(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "db_path": self.db_path,
            "repository": self.repository,
            "reciprocal_link_guard": self.reciprocal_link_guard,
            "max_store_retries": self.max_store_retries,
            "log_level": self.log_level,
        }


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load settings from YAML and the environment.

    Args:
        config_path: YAML file to read (defaults to $BUGTRACKER_CONFIG)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Settings with environment overrides applied
    """
    env = os.environ if environ is None else environ
    path = config_path or env.get(CONFIG_FILE_ENV)

    data: Dict[str, Any] = {}
    if path:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

    for key, var in ENV_OVERRIDES.items():
        if env.get(var):
            data[key] = env[var]

    return Settings.from_dict(data)


if __name__ == "__main__":
    print("Bugtracker Configuration")
    print("=" * 50)
    for key, value in load_settings().to_dict().items():
        print(f"  {key}: {value}")
