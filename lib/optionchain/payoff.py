"""
Strategy Payoff Engine

Computes the expiry profit/loss curve of a multi-leg option strategy,
together with its breakeven points and max profit / max loss.

Pure computation: no I/O, no shared state. Safe to call concurrently.

Usage:
    from lib.optionchain.payoff import (
        OptionLeg, OptionType, Direction, StrategyDefinition, compute_payoff,
    )

    strategy = StrategyDefinition(legs=(
        OptionLeg(strike=100, premium=5, quantity=1,
                  option_type=OptionType.CALL, direction=Direction.BUY),
    ))
    result = compute_payoff(strategy)
    print(result.breakevens)   # [105.0]
    print(result.max_profit)   # Unbounded()
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


DEFAULT_GRID_POINTS = 201
MIN_GRID_POINTS = 50

# Range margin applied below the lowest strike and above the highest strike
GRID_MARGIN = 0.5

UNBOUNDED_MARKER = "unbounded"


# ============================================================================
# Errors
# ============================================================================

class ValidationError(ValueError):
    """
    Malformed or out-of-range strategy input.

    Attributes:
        leg_index: Index of the offending leg (None for strategy-level errors)
        field: Name of the offending field, in request naming ("quantity", "optionType", ...)
        message: Human readable reason
    """

    def __init__(self, message: str, field: str, leg_index: Optional[int] = None):
        self.message = message
        self.field = field
        self.leg_index = leg_index
        if leg_index is None:
            super().__init__(f"{field}: {message}")
        else:
            super().__init__(f"legs[{leg_index}].{field}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "legIndex": self.leg_index,
            "field": self.field,
            "message": self.message,
        }


# ============================================================================
# Data Structures
# ============================================================================

class OptionType(str, Enum):
    """Option right."""
    CALL = "CALL"
    PUT = "PUT"


class Direction(str, Enum):
    """Whether the leg is bought (debit) or sold (credit)."""
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class OptionLeg:
    """A single option position within a strategy."""
    strike: float
    premium: float
    quantity: int              # lot size x number of lots
    option_type: OptionType
    direction: Direction


@dataclass(frozen=True)
class StrategyDefinition:
    """Ordered legs of a single-expiry strategy. Leg order does not affect the result."""
    legs: Tuple[OptionLeg, ...]


@dataclass(frozen=True)
class Bounded:
    """A finite max profit / max loss."""
    value: float

    def to_json(self) -> float:
        return round(self.value, 2)


@dataclass(frozen=True)
class Unbounded:
    """Max profit / max loss grows without limit as the underlying rises."""

    def to_json(self) -> str:
        return UNBOUNDED_MARKER


Extremum = Union[Bounded, Unbounded]


@dataclass(frozen=True)
class PayoffResult:
    """Payoff curve at expiry plus summary statistics."""
    price_grid: Tuple[float, ...]
    payoff: Tuple[float, ...]
    breakevens: Tuple[float, ...]
    max_profit: Extremum
    max_loss: Extremum         # magnitude of the worst outcome (positive = loss)
    net_premium: float         # positive = net credit received


# ============================================================================
# Validation
# ============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_leg(index: int, leg: OptionLeg) -> None:
    """
    Check a leg against the model invariants.

    Raises:
        ValidationError: naming the leg index and the first offending field
    """
    if leg.strike is None:
        raise ValidationError("field is required", "strike", index)
    if not _is_number(leg.strike) or leg.strike <= 0:
        raise ValidationError("must be a positive number", "strike", index)

    if leg.premium is None:
        raise ValidationError("field is required", "premium", index)
    if not _is_number(leg.premium) or leg.premium < 0:
        raise ValidationError("must be a non-negative number", "premium", index)

    if leg.quantity is None:
        raise ValidationError("field is required", "quantity", index)
    if not isinstance(leg.quantity, int) or isinstance(leg.quantity, bool) or leg.quantity <= 0:
        raise ValidationError("must be a positive integer", "quantity", index)

    if leg.option_type is None:
        raise ValidationError("field is required", "optionType", index)
    if not isinstance(leg.option_type, OptionType):
        raise ValidationError("must be CALL or PUT", "optionType", index)

    if leg.direction is None:
        raise ValidationError("field is required", "direction", index)
    if not isinstance(leg.direction, Direction):
        raise ValidationError("must be BUY or SELL", "direction", index)


def validate_strategy(strategy: StrategyDefinition) -> None:
    """Validate every leg; the whole strategy is rejected on the first bad leg."""
    if not strategy.legs:
        raise ValidationError("at least one leg is required", "legs")
    for index, leg in enumerate(strategy.legs):
        validate_leg(index, leg)


# ============================================================================
# Core Computation Functions
# ============================================================================

def intrinsic_value(option_type: OptionType, strike: float, price: float) -> float:
    """Per-unit value of the option at expiry."""
    if option_type == OptionType.CALL:
        return max(price - strike, 0.0)
    return max(strike - price, 0.0)


def leg_payoff(leg: OptionLeg, price: float) -> float:
    """Signed P/L of one leg at expiry for underlying price `price`."""
    intrinsic = intrinsic_value(leg.option_type, leg.strike, price)
    if leg.direction == Direction.BUY:
        return (intrinsic - leg.premium) * leg.quantity
    return (leg.premium - intrinsic) * leg.quantity


def strategy_payoff(legs: Sequence[OptionLeg], price: float) -> float:
    """Aggregate P/L of all legs at `price`."""
    return sum(leg_payoff(leg, price) for leg in legs)


def net_premium(legs: Sequence[OptionLeg]) -> float:
    """Net premium of the position. Positive is a net credit, negative a net debit."""
    total = 0.0
    for leg in legs:
        sign = 1 if leg.direction == Direction.SELL else -1
        total += sign * leg.premium * leg.quantity
    return total


def upside_slope(legs: Sequence[OptionLeg]) -> int:
    """
    Slope of the aggregate payoff as the underlying goes to infinity.

    Only calls are in the money above the highest strike, so the slope is
    the quantity-weighted net long call position.
    """
    slope = 0
    for leg in legs:
        if leg.option_type != OptionType.CALL:
            continue
        slope += leg.quantity if leg.direction == Direction.BUY else -leg.quantity
    return slope


def price_range(legs: Sequence[OptionLeg]) -> Tuple[float, float]:
    """
    Underlying price range covered by the grid.

    50% margin below the lowest and above the highest strike, widened by the
    total per-unit premium so that K +/- premium breakevens stay in range.
    Outside the strikes the payoff is linear, so a tail crossing beyond
    those bounds (ratio spreads) is solved for and included with margin.
    """
    strikes = [leg.strike for leg in legs]
    low_strike = min(strikes)
    high_strike = max(strikes)
    premium_pad = sum(leg.premium for leg in legs)

    lower = max(0.0, min(low_strike * (1 - GRID_MARGIN), low_strike - premium_pad))
    upper = max(high_strike * (1 + GRID_MARGIN), high_strike + premium_pad)

    up_root = _tail_root(strategy_payoff(legs, high_strike), upside_slope(legs))
    if up_root is not None and high_strike + up_root > upper:
        upper = high_strike + up_root * (1 + GRID_MARGIN)

    down_root = _tail_root(strategy_payoff(legs, low_strike), _downside_slope(legs))
    if down_root is not None and 0.0 < low_strike - down_root < lower:
        lower = max(0.0, low_strike - down_root * (1 + GRID_MARGIN))

    return lower, upper


def _downside_slope(legs: Sequence[OptionLeg]) -> int:
    """Payoff gained per unit fall of the underlying below the lowest strike."""
    slope = 0
    for leg in legs:
        if leg.option_type != OptionType.PUT:
            continue
        slope += leg.quantity if leg.direction == Direction.BUY else -leg.quantity
    return slope


def _tail_root(edge_value: float, slope: int) -> Optional[float]:
    """Distance from the edge strike to the zero of a linear tail, if it has one."""
    if slope == 0 or edge_value == 0 or (edge_value > 0) == (slope > 0):
        return None
    return -edge_value / slope


def build_price_grid(legs: Sequence[OptionLeg], grid_points: int = DEFAULT_GRID_POINTS) -> List[float]:
    """Evenly spaced underlying prices spanning price_range(legs)."""
    if grid_points < MIN_GRID_POINTS:
        raise ValueError(f"grid_points must be at least {MIN_GRID_POINTS}, got {grid_points}")

    lower, upper = price_range(legs)
    step = (upper - lower) / (grid_points - 1)
    grid = [lower + i * step for i in range(grid_points)]
    grid[-1] = upper
    return grid


def _sign(value: float, tolerance: float) -> int:
    if abs(value) <= tolerance:
        return 0
    return 1 if value > 0 else -1


def find_breakevens(prices: Sequence[float], payoff: Sequence[float]) -> List[float]:
    """
    Locate zero crossings of a sampled payoff curve.

    Adjacent samples with opposite signs are linearly interpolated. Samples
    within tolerance of zero count as exact zeros; a run of zeros between
    opposite signs yields a single breakeven at the middle of the run.
    Touching zero without changing sign is not a crossing.

    Returns:
        Ascending list of breakeven prices
    """
    if len(prices) != len(payoff):
        raise ValueError("prices and payoff must have the same length")

    scale = max((abs(v) for v in payoff), default=0.0)
    tolerance = 1e-9 * max(1.0, scale)

    breakevens: List[float] = []
    prev_idx: Optional[int] = None
    prev_sign = 0

    for i, value in enumerate(payoff):
        sign = _sign(value, tolerance)
        if sign == 0:
            continue

        if prev_idx is not None and sign != prev_sign:
            if i == prev_idx + 1:
                x0, x1 = prices[prev_idx], prices[i]
                y0, y1 = payoff[prev_idx], payoff[i]
                breakevens.append(x0 + (x1 - x0) * (-y0) / (y1 - y0))
            else:
                # Zero run strictly between prev_idx and i
                first_zero = prices[prev_idx + 1]
                last_zero = prices[i - 1]
                breakevens.append((first_zero + last_zero) / 2)

        prev_idx = i
        prev_sign = sign

    breakevens.sort()
    return breakevens


def _extremes(legs: Sequence[OptionLeg], payoff: Sequence[float]) -> Tuple[Extremum, Extremum]:
    """
    Max profit and max loss over [0, inf).

    The aggregate payoff is piecewise linear with kinks only at strikes, so
    the bounded extremes lie on the knots {0} + strikes (or on the grid,
    which lies inside their hull). The upside tail decides unboundedness.
    """
    knots = [0.0] + [leg.strike for leg in legs]
    values = list(payoff) + [strategy_payoff(legs, k) for k in knots]

    slope = upside_slope(legs)

    if slope > 0:
        max_profit: Extremum = Unbounded()
    else:
        max_profit = Bounded(max(values))

    if slope < 0:
        max_loss: Extremum = Unbounded()
    else:
        max_loss = Bounded(0.0 - min(values))

    return max_profit, max_loss


def compute_payoff(
    strategy: StrategyDefinition,
    grid_points: int = DEFAULT_GRID_POINTS,
) -> PayoffResult:
    """
    Compute the expiry payoff of a strategy.

    Steps:
    1. Validate every leg (whole strategy is rejected on any bad leg)
    2. Build an evenly spaced underlying price grid from the strikes
    3. Sum the signed leg payoffs at every grid price
    4. Detect breakevens from sign changes along the grid
    5. Derive max profit / max loss, detecting unbounded tails analytically

    Args:
        strategy: Legs to evaluate
        grid_points: Number of samples in the price grid (>= 50)

    Returns:
        PayoffResult

    Raises:
        ValidationError: if any leg is malformed
        ValueError: if grid_points is too small
    """
    validate_strategy(strategy)
    legs = strategy.legs

    grid = build_price_grid(legs, grid_points)
    payoff = [strategy_payoff(legs, price) for price in grid]
    breakevens = find_breakevens(grid, payoff)
    max_profit, max_loss = _extremes(legs, payoff)

    return PayoffResult(
        price_grid=tuple(grid),
        payoff=tuple(payoff),
        breakevens=tuple(breakevens),
        max_profit=max_profit,
        max_loss=max_loss,
        net_premium=net_premium(legs),
    )
