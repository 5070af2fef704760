"""Settings: finds and loads .tfweave/config.yaml, then applies environment overrides."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_DIR = ".tfweave"
CONFIG_FILE = "config.yaml"

_TRUTHY = ("1", "true", "yes", "on")


class Settings(BaseModel):
    parallel: bool = True
    max_workers: int = Field(default=4, ge=1)
    strict_kinds: bool = False
    schema_dirs: list[Path] = Field(default_factory=list)

    @field_validator("schema_dirs", mode="before")
    @classmethod
    def coerce_dirs(cls, v: Any) -> Any:
        if isinstance(v, (str, Path)):
            return [v]
        return v

    @classmethod
    def load(cls, start: Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
        """Project config (if any) with environment overrides applied on top."""
        data: dict[str, Any] = {}
        root = find_project_root(start)
        if root is not None:
            data = load_project_config(root)
            # relative schema dirs are relative to the project root
            dirs = data.get("schema_dirs") or []
            if isinstance(dirs, (str, Path)):
                dirs = [dirs]
            data["schema_dirs"] = [root / d for d in dirs]
        data.update(_env_overrides(os.environ if environ is None else environ))
        return cls.model_validate(data)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from start (default: cwd) looking for a .tfweave/ directory."""
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_DIR).is_dir():
            return parent
    return None


def load_project_config(project_root: Path) -> dict[str, Any]:
    """Load .tfweave/config.yaml if it exists."""
    config_path = project_root / CONFIG_DIR / CONFIG_FILE
    if config_path.exists():
        logger.debug("Loading settings from %s", config_path)
        return yaml.safe_load(config_path.read_text()) or {}
    return {}


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if "TFWEAVE_NO_PARALLEL" in environ:
        overrides["parallel"] = environ["TFWEAVE_NO_PARALLEL"].strip().lower() not in _TRUTHY
    if environ.get("TFWEAVE_MAX_WORKERS"):
        overrides["max_workers"] = environ["TFWEAVE_MAX_WORKERS"]
    if "TFWEAVE_STRICT_KINDS" in environ:
        overrides["strict_kinds"] = environ["TFWEAVE_STRICT_KINDS"].strip().lower() in _TRUTHY
    return overrides
