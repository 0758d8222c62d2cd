"""Engine configuration.

Settings are read from ``~/.promptsandbox/configuration.json`` and then
overridden by ``PROMPTSANDBOX_*`` environment variables. A missing or
unreadable file yields the defaults.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CONFIG_FILE = Path.home() / ".promptsandbox" / "configuration.json"
ENV_PREFIX = "PROMPTSANDBOX_"


class RerunPolicy(str, Enum):
    """Which nodes a traversal re-executes."""

    FULL = "full"
    INCREMENTAL = "incremental"


class Settings(BaseModel):
    """Runtime settings shared by the executor, the LLM service and storage."""

    model_config = ConfigDict(frozen=True)

    default_model: str = "gpt-3.5-turbo"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=256, ge=1)
    rerun_policy: RerunPolicy = RerunPolicy.FULL
    max_concurrency: int | None = Field(default=None, ge=1)
    skip_unresolved_prompts: bool = True
    request_timeout: float | None = Field(default=60.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    storage_dir: Path = Field(default_factory=lambda: Path.home() / ".promptsandbox" / "workflows")


def read_config_file(path: Path = CONFIG_FILE) -> dict[str, Any]:
    """Load the JSON configuration file, or ``{}`` if it cannot be read."""
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in Settings.model_fields:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is None:
            continue
        if name == "max_concurrency" and value.strip().lower() in ("", "none", "0"):
            overrides[name] = None
            continue
        overrides[name] = value
    return overrides


def load_settings(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Build ``Settings`` from the config file and the environment.

    Raises:
        ValueError: If an override holds a value of the wrong type.
    """
    values = read_config_file(path or CONFIG_FILE)
    values.update(_env_overrides(dict(os.environ) if environ is None else environ))

    try:
        return Settings.model_validate(values)
    except ValidationError as exc:
        sys.stderr.write(f"[CONFIG] Invalid settings: {exc.errors(include_url=False)}\n")
        sys.stderr.flush()
        raise ValueError(exc.errors(include_url=False)) from exc
