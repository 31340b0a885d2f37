"""
Request/response schemas for the strategy builder.

Maps loosely typed JSON payloads onto a validated StrategyDefinition and
converts PayoffResult back into the JSON shape served to clients.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from .payoff import (
    Direction,
    OptionLeg,
    OptionType,
    PayoffResult,
    StrategyDefinition,
    ValidationError,
)


# ============================================================================
# Request Models
# ============================================================================

class LegPayload(BaseModel):
    """One leg as sent by the builder UI."""
    # Strict: "100" is not a strike, 1.5 or true is not a quantity
    strike: float = Field(..., gt=0, strict=True, allow_inf_nan=False, description="Strike price")
    premium: float = Field(..., ge=0, strict=True, allow_inf_nan=False, description="Premium per unit")
    quantity: int = Field(..., gt=0, strict=True, description="Lot size x number of lots")
    optionType: Literal["CALL", "PUT"]
    direction: Literal["BUY", "SELL"]

    model_config = ConfigDict(extra="ignore")

    def to_leg(self) -> OptionLeg:
        return OptionLeg(
            strike=float(self.strike),
            premium=float(self.premium),
            quantity=self.quantity,
            option_type=OptionType(self.optionType),
            direction=Direction(self.direction),
        )


class BuilderRequest(BaseModel):
    """Payload of POST /builder."""
    legs: List[LegPayload] = Field(..., min_length=1)

    model_config = ConfigDict(extra="ignore")


# ============================================================================
# Parsing
# ============================================================================

def _to_validation_error(exc: SchemaError) -> ValidationError:
    """Convert the first pydantic error into a leg-indexed ValidationError."""
    first = exc.errors()[0]
    loc = first.get("loc", ())
    message = first.get("msg", "invalid value")

    if len(loc) >= 3 and loc[0] == "legs" and isinstance(loc[1], int):
        return ValidationError(message, field=str(loc[2]), leg_index=loc[1])
    if len(loc) == 2 and loc[0] == "legs" and isinstance(loc[1], int):
        # The leg itself is not an object
        return ValidationError(message, field="leg", leg_index=loc[1])
    return ValidationError(message, field="legs")


def parse_strategy(payload: Any) -> StrategyDefinition:
    """
    Validate a raw builder payload.

    Args:
        payload: Decoded JSON body, expected to look like {"legs": [{...}, ...]}

    Returns:
        StrategyDefinition ready for compute_payoff

    Raises:
        ValidationError: naming the offending leg index and field
    """
    if not isinstance(payload, dict):
        raise ValidationError("request body must be an object with a 'legs' list", field="legs")

    try:
        request = BuilderRequest.model_validate(payload)
    except SchemaError as e:
        raise _to_validation_error(e) from e

    return StrategyDefinition(legs=tuple(leg.to_leg() for leg in request.legs))


# ============================================================================
# Response Builders
# ============================================================================

def payoff_to_dict(result: PayoffResult) -> Dict[str, Any]:
    """Serialize a PayoffResult to the builder response shape."""
    return {
        "priceGrid": [round(p, 2) for p in result.price_grid],
        "payoff": [round(v, 2) for v in result.payoff],
        "breakevens": [round(b, 2) for b in result.breakevens],
        "maxProfit": result.max_profit.to_json(),
        "maxLoss": result.max_loss.to_json(),
        "netPremium": round(result.net_premium, 2),
    }


def error_body(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> Dict[str, Any]:
    """Build a structured JSON error body."""
    return {
        "error": {
            "code": str(code),
            "message": str(message),
            "details": details if details else None,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def validation_error_body(error: ValidationError) -> Dict[str, Any]:
    """Error body for a rejected strategy, naming the leg and field."""
    return error_body(
        "VALIDATION_ERROR",
        str(error),
        details=error.to_dict(),
    )
