"""
Registrar configuration parameters for namebid.

Defines the release schedule and operational paths. Values come from, in
increasing priority: defaults, environment (optionally a .env file), and a
JSON config file.
"""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

# Phase durations in blocks (roughly seven days at one block per second)
DEFAULT_BID_PERIOD = 604_800
DEFAULT_REVEAL_PERIOD = 604_800

# One release cohort per period, 52 periods per cycle
ELIGIBILITY_MODULUS = 52

ENV_PREFIX = "NAMEBID_"


@dataclass
class RegistrarConfig:
    """Registrar-wide configuration parameters"""

    # Schedule parameters
    bid_period: int = DEFAULT_BID_PERIOD
    reveal_period: int = DEFAULT_REVEAL_PERIOD
    eligibility_modulus: int = ELIGIBILITY_MODULUS
    launch_tick: Optional[int] = None  # None = ledger time at construction

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("data"))
    log_dir: Path = field(default_factory=lambda: Path("logs"))

    def __post_init__(self):
        """Reject schedules the phase clock cannot run on"""
        if self.bid_period <= 0:
            raise ValueError(f"bid_period must be positive, got {self.bid_period}")
        if self.reveal_period <= 0:
            raise ValueError(f"reveal_period must be positive, got {self.reveal_period}")
        if self.eligibility_modulus <= 0:
            raise ValueError(
                f"eligibility_modulus must be positive, got {self.eligibility_modulus}"
            )
        if self.launch_tick is not None and self.launch_tick < 0:
            raise ValueError(f"launch_tick must be >= 0, got {self.launch_tick}")
        self.data_dir = Path(self.data_dir)
        self.log_dir = Path(self.log_dir)

    def ensure_dirs(self) -> None:
        """Create data and log directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.log_dir.mkdir(exist_ok=True, parents=True)


class ConfigFile(BaseModel):
    """Schema of the JSON config file. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    bid_period: Optional[int] = Field(default=None, gt=0)
    reveal_period: Optional[int] = Field(default=None, gt=0)
    eligibility_modulus: Optional[int] = Field(default=None, gt=0)
    launch_tick: Optional[int] = Field(default=None, ge=0)
    data_dir: Optional[str] = None
    log_dir: Optional[str] = None


_INT_FIELDS = ("bid_period", "reveal_period", "eligibility_modulus", "launch_tick")
_PATH_FIELDS = ("data_dir", "log_dir")


def _from_environment() -> dict:
    values = {}
    for name in _INT_FIELDS + _PATH_FIELDS:
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw is None or raw == "":
            continue
        if name in _INT_FIELDS:
            try:
                values[name] = int(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}")
        else:
            values[name] = Path(raw)
    return values


def _from_file(config_path: Path) -> dict:
    try:
        data = json.loads(config_path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Config file {config_path} is not valid JSON: {e}")

    try:
        parsed = ConfigFile.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config file {config_path}: {e}")

    values = parsed.model_dump(exclude_none=True)
    for name in _PATH_FIELDS:
        if name in values:
            values[name] = Path(values[name])
    return values


def load_config(
    config_path: Optional[str] = None,
    env_file: Optional[str] = None,
) -> RegistrarConfig:
    """
    Load configuration from environment and file, or use defaults.

    Args:
        config_path: Optional path to a JSON config file
        env_file: Optional .env file to load into the environment first

    Returns:
        RegistrarConfig instance
    """
    if env_file:
        load_dotenv(env_file, override=False)

    config = RegistrarConfig()
    overrides = _from_environment()

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ValueError(f"Config file not found: {path}")
        overrides.update(_from_file(path))

    if overrides:
        config = replace(config, **overrides)
    return config
