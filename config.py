import math
import os
from dataclasses import dataclass, fields, replace
from typing import Optional

from dotenv import load_dotenv


# values from a local .env file become TSP_SA_* defaults
load_dotenv()

ENV_PREFIX = "TSP_SA_"


class ConfigError(ValueError):
    """Invalid annealing configuration."""


@dataclass(frozen=True)
class AnnealConfig:
    """Annealing parameters, fixed for the lifetime of one optimizer.

    The cooling schedule decays exponentially from ``start_temp`` to
    ``end_temp`` over ``max_iterations``; each iteration tries
    ``cycles_per_iteration`` swap moves.
    """

    max_iterations: int = 1000
    start_temp: float = 100.0
    end_temp: float = 0.01
    cycles_per_iteration: int = 100
    seed: Optional[int] = None
    # legacy mode: roll back accepted moves that miss the best, keep their score
    legacy_rollback: bool = False

    def validate(self) -> "AnnealConfig":
        if self.max_iterations <= 0:
            raise ConfigError(f"max_iterations must be > 0, got {self.max_iterations}")
        if self.cycles_per_iteration <= 0:
            raise ConfigError(f"cycles_per_iteration must be > 0, got {self.cycles_per_iteration}")
        for name in ("start_temp", "end_temp"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ConfigError(f"{name} must be a finite number, got {value}")
        if self.end_temp <= 0:
            raise ConfigError(f"end_temp must be > 0, got {self.end_temp}")
        if self.start_temp <= self.end_temp:
            raise ConfigError(
                f"start_temp must be greater than end_temp, got {self.start_temp} <= {self.end_temp}"
            )
        return self


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _from_env() -> dict:
    values = {}
    for f in fields(AnnealConfig):
        raw = os.getenv(ENV_PREFIX + f.name.upper())
        if raw is None or raw.strip() == "":
            continue
        try:
            if f.name in ("max_iterations", "cycles_per_iteration", "seed"):
                values[f.name] = int(raw)
            elif f.name == "legacy_rollback":
                values[f.name] = _parse_bool(raw)
            else:
                values[f.name] = float(raw)
        except ValueError as exc:
            raise ConfigError(f"{ENV_PREFIX}{f.name.upper()}={raw!r} is not valid: {exc}") from exc
    return values


def load_config(**overrides) -> AnnealConfig:
    """Defaults, then TSP_SA_* environment variables, then explicit overrides."""
    cfg = replace(AnnealConfig(), **_from_env())
    overrides = {k: v for k, v in overrides.items() if v is not None}
    cfg = replace(cfg, **overrides)
    return cfg.validate()
