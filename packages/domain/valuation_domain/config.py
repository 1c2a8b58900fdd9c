"""Engine settings.

Numeric policy that is not part of a single valuation (solver tolerances, default
model weights, sensitivity step sizes) lives here instead of being hard-coded in
the blocks. Values load from environment variables prefixed with ``VALUATION_``
and from a local ``.env`` file.

Example:
    VALUATION_BACKSOLVE_TOLERANCE=0.001 valuation-report cfg.json -o out.xlsx
"""

from functools import lru_cache
from typing import Dict

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ValuationSettings(BaseSettings):
    """Tunable defaults for the valuation engine."""

    model_config = SettingsConfigDict(
        env_prefix="VALUATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level used by the CLI")

    # OPM / Black-Scholes
    zero_strike_floor: float = Field(
        default=0.00001,
        gt=0,
        description="Strike substituted for a zero breakpoint so the call formula stays defined",
    )
    high_volatility_warning: float = Field(default=3.0, description="Warn above this volatility")
    long_term_warning_years: float = Field(default=10.0, description="Warn above this time to liquidity")
    opm_overallocation_tolerance: float = Field(
        default=0.01,
        ge=0,
        description="Allowed excess of allocated value over equity value (fraction)",
    )

    # Backsolve
    backsolve_tolerance: float = Field(
        default=0.01,
        gt=0,
        description="Maximum per-share pricing error accepted by the backsolve, in currency units",
    )
    backsolve_max_iterations: int = Field(default=100, ge=1)
    backsolve_max_bracket_expansions: int = Field(default=60, ge=1)

    # Implied volatility
    implied_vol_tolerance: float = Field(default=1e-4, gt=0)
    implied_vol_max_iterations: int = Field(default=100, ge=1)

    # PWERM
    probability_tolerance: float = Field(
        default=1.0,
        ge=0,
        description="Percentage points a probability total may drift from 100 before warning",
    )
    probability_error_threshold: float = Field(
        default=10.0,
        ge=0,
        description="Percentage points a probability total may drift from 100 before failing",
    )

    # Risk-free rate
    rate_interpolation_threshold_years: float = Field(
        default=0.5,
        ge=0,
        description="Interpolate the yield curve only when both bounding maturities are further away than this",
    )

    # DLOM
    dlom_weights: Dict[str, float] = Field(
        default_factory=lambda: {
            "chaffee": 25.0,
            "finnerty": 25.0,
            "ghaidarov": 25.0,
            "longstaff": 25.0,
        },
        description="Default model weights in percent",
    )

    # Sensitivity
    sensitivity_rate_step: float = Field(default=0.01, gt=0, description="WACC step for sensitivity grids")
    sensitivity_growth_step: float = Field(default=0.005, gt=0, description="Growth step for sensitivity grids")
    sensitivity_multiple_step: float = Field(default=1.0, gt=0, description="Exit multiple step for sensitivity grids")
    sensitivity_steps: int = Field(default=2, ge=1, description="Steps on each side of the base case")

    @model_validator(mode="after")
    def validate_dlom_weights(self):
        total = sum(self.dlom_weights.values())
        if abs(total - 100.0) > 0.01:
            raise ValueError(f"dlom_weights must total 100, got {total}")
        return self


@lru_cache
def get_settings() -> ValuationSettings:
    """Return the process-wide settings instance."""
    return ValuationSettings()
