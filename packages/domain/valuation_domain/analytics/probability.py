"""Probability helpers for scenario weighting (PWERM and hybrid).

Probabilities are percentages (0-100) unless a function says otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

import numpy as np

from ..config import get_settings
from ..errors import ProbabilityError

logger = logging.getLogger(__name__)


@dataclass
class ProbabilityValidation:
    """Outcome of validating a set of scenario probabilities.

    Attributes:
        is_valid: False when any error was found
        total: Sum of the probabilities (percent)
        errors: Blocking problems
        warnings: Non-blocking problems (e.g. total slightly off 100)
        normalized: Probabilities rescaled to sum to 1
    """

    is_valid: bool
    total: float
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    normalized: List[float] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        """Raise ProbabilityError listing all errors, if any."""
        if self.errors:
            raise ProbabilityError("; ".join(self.errors))


@dataclass(frozen=True)
class DistributionStatistics:
    """Probability-weighted summary of a discrete outcome distribution."""

    mean: float
    variance: float
    std_dev: float
    coefficient_of_variation: float
    p25: float
    median: float
    p75: float


def validate_probabilities(
    probabilities: Sequence[float],
    tolerance: Optional[float] = None,
    error_threshold: Optional[float] = None,
) -> ProbabilityValidation:
    """Validate scenario probabilities expressed in percent.

    Rules:
        - At least one probability
        - Each probability within [0, 100]
        - Total more than ``error_threshold`` points off 100 is an error
        - Total more than ``tolerance`` points off 100 is a warning

    Args:
        probabilities: Probabilities in percent
        tolerance: Warning threshold in percentage points (default from settings)
        error_threshold: Error threshold in percentage points (default from settings)
    """
    settings = get_settings()
    tolerance = settings.probability_tolerance if tolerance is None else tolerance
    error_threshold = settings.probability_error_threshold if error_threshold is None else error_threshold

    if len(probabilities) == 0:
        return ProbabilityValidation(is_valid=False, total=0.0, errors=["No probabilities provided"])

    errors: List[str] = []
    warnings: List[str] = []
    for i, p in enumerate(probabilities, start=1):
        if p < 0:
            errors.append(f"Probability {i} is negative: {p}")
        elif p > 100:
            errors.append(f"Probability {i} exceeds 100%: {p}")

    total = float(sum(probabilities))
    deviation = abs(total - 100.0)
    if deviation > error_threshold:
        errors.append(f"Probabilities total {total:.2f}%, expected 100%")
    elif deviation > tolerance:
        warnings.append(f"Probabilities total {total:.2f}%; they will be normalized to 100%")

    normalized = [p / 100.0 for p in normalize_probabilities(probabilities)] if not errors else []
    for message in warnings:
        logger.warning(message)

    return ProbabilityValidation(
        is_valid=not errors,
        total=total,
        errors=errors,
        warnings=warnings,
        normalized=normalized,
    )


def normalize_probabilities(probabilities: Sequence[float]) -> List[float]:
    """Rescale probabilities to total 100. All-zero input is split equally."""
    if len(probabilities) == 0:
        return []
    total = float(sum(probabilities))
    if total == 0:
        return [100.0 / len(probabilities)] * len(probabilities)
    return [float(p) / total * 100.0 for p in probabilities]


def adjust_probabilities(
    probabilities: Sequence[float],
    index: int,
    new_value: float,
) -> List[float]:
    """Set one probability and rescale the others so the total stays 100.

    The others keep their relative proportions. If they are all zero, the
    remainder is split equally among them.

    Example:
        >>> adjust_probabilities([50, 30, 20], 0, 60)
        [60.0, 24.0, 16.0]
    """
    if not 0 <= index < len(probabilities):
        raise IndexError(f"Scenario index {index} out of range")

    new_value = min(max(float(new_value), 0.0), 100.0)
    remaining = 100.0 - new_value
    others_total = sum(float(p) for i, p in enumerate(probabilities) if i != index)
    others_count = len(probabilities) - 1

    adjusted = []
    for i, p in enumerate(probabilities):
        if i == index:
            adjusted.append(new_value)
        elif others_total > 0:
            adjusted.append(float(p) / others_total * remaining)
        else:
            adjusted.append(remaining / others_count)
    return adjusted


def weighted_average(
    values: Sequence[float],
    weights: Sequence[float],
    weight_format: Literal["percentage", "decimal"] = "percentage",
) -> float:
    """Weighted average of values.

    Args:
        values: Values to average
        weights: Weights, as percentages (0-100) or decimals (0-1)
        weight_format: How to read ``weights``

    Returns:
        Weighted average; 0.0 for empty input.

    Raises:
        ProbabilityError: If lengths differ or the weights total zero.
    """
    if len(values) != len(weights):
        raise ProbabilityError("Values and weights must have the same length")
    if len(values) == 0:
        return 0.0

    w = np.asarray(weights, dtype=float)
    if weight_format == "percentage":
        w = w / 100.0
    total = w.sum()
    if total == 0:
        raise ProbabilityError("Total weight cannot be zero")
    return float(np.dot(np.asarray(values, dtype=float), w) / total)


def distribution_statistics(
    values: Sequence[float],
    probabilities: Sequence[float],
) -> DistributionStatistics:
    """Probability-weighted moments and percentiles of scenario outcomes.

    Percentiles walk the outcomes in ascending order and return the first
    value whose cumulative probability reaches the percentile.

    Args:
        values: Outcome per scenario
        probabilities: Probability per scenario in percent (normalized here)
    """
    if len(values) == 0:
        raise ProbabilityError("No scenarios to summarize")
    if len(values) != len(probabilities):
        raise ProbabilityError("Values and probabilities must have the same length")

    x = np.asarray(values, dtype=float)
    p = np.asarray(normalize_probabilities(probabilities), dtype=float) / 100.0

    mean = float(np.dot(x, p))
    variance = float(np.dot((x - mean) ** 2, p))
    std_dev = float(np.sqrt(variance))
    cv = std_dev / mean if mean != 0 else 0.0

    order = np.argsort(x, kind="stable")
    sorted_x = x[order]
    cumulative = np.cumsum(p[order])

    def percentile(q: float) -> float:
        idx = int(np.searchsorted(cumulative, q - 1e-12, side="left"))
        return float(sorted_x[min(idx, len(sorted_x) - 1)])

    return DistributionStatistics(
        mean=mean,
        variance=variance,
        std_dev=std_dev,
        coefficient_of_variation=cv,
        p25=percentile(0.25),
        median=percentile(0.50),
        p75=percentile(0.75),
    )
