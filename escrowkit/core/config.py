"""
escrowkit/core/config.py

Engine configuration, loaded from YAML.

Example (escrowkit.yaml):

    treasury: treasury
    max_bps: 5000
    default_fees:
      coverage: 300
      claim: 500
    max_milestones_per_tx: 10
    max_claim_range: 100
    recovery:
      period: 259200
      min_period: 259200
      max_period: 2592000
    ledger_path: .escrowkit/events.jsonl
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


CONFIG_ENV_VAR = "ESCROWKIT_CONFIG"

# No single fee rate may ever exceed 50%.
BPS_CEILING = 5_000

DAY = 24 * 60 * 60


@dataclass
class EscrowConfig:
    treasury:              str = "treasury"
    max_bps:               int = BPS_CEILING
    default_coverage_bps:  int = 300
    default_claim_bps:     int = 500
    max_milestones_per_tx: int = 10
    max_claim_range:       int = 100
    recovery_period:       int = 3 * DAY
    min_recovery_period:   int = 3 * DAY
    max_recovery_period:   int = 30 * DAY
    ledger_path:           Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.treasury:
            raise ValueError("treasury must be a non-empty identity")
        if not 0 <= self.max_bps <= BPS_CEILING:
            raise ValueError(
                f"max_bps must be between 0 and {BPS_CEILING}, got {self.max_bps}"
            )
        for name in ("default_coverage_bps", "default_claim_bps"):
            value = getattr(self, name)
            if not 0 <= value <= self.max_bps:
                raise ValueError(
                    f"{name} must be between 0 and max_bps ({self.max_bps}), got {value}"
                )
        if self.max_milestones_per_tx < 1:
            raise ValueError("max_milestones_per_tx must be at least 1")
        if self.max_claim_range < 1:
            raise ValueError("max_claim_range must be at least 1")
        if not 0 < self.min_recovery_period <= self.max_recovery_period:
            raise ValueError(
                "recovery periods must satisfy 0 < min_period <= max_period"
            )
        if not self.min_recovery_period <= self.recovery_period <= self.max_recovery_period:
            raise ValueError(
                f"recovery period {self.recovery_period} outside "
                f"[{self.min_recovery_period}, {self.max_recovery_period}]"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "EscrowConfig":
        data = data or {}
        fees = data.get("default_fees", {}) or {}
        recovery = data.get("recovery", {}) or {}
        defaults = cls.__dataclass_fields__
        return cls(
            treasury=              data.get("treasury", defaults["treasury"].default),
            max_bps=               int(data.get("max_bps", BPS_CEILING)),
            default_coverage_bps=  int(fees.get("coverage", defaults["default_coverage_bps"].default)),
            default_claim_bps=     int(fees.get("claim", defaults["default_claim_bps"].default)),
            max_milestones_per_tx= int(data.get("max_milestones_per_tx", defaults["max_milestones_per_tx"].default)),
            max_claim_range=       int(data.get("max_claim_range", defaults["max_claim_range"].default)),
            recovery_period=       int(recovery.get("period", defaults["recovery_period"].default)),
            min_recovery_period=   int(recovery.get("min_period", defaults["min_recovery_period"].default)),
            max_recovery_period=   int(recovery.get("max_period", defaults["max_recovery_period"].default)),
            ledger_path=           data.get("ledger_path"),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "EscrowConfig":
        """Load configuration from a YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(yaml.safe_load(f))

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "EscrowConfig":
        """
        Load from path, else from $ESCROWKIT_CONFIG, else defaults.
        """
        path = path or os.environ.get(CONFIG_ENV_VAR)
        if path:
            return cls.from_yaml(Path(path))
        return cls()
