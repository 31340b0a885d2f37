"""
Pytest configuration for option chain proxy tests.

Sets up paths for imports and shared strategy fixtures.
"""

import sys
import os

import pytest

# Add project root to path for imports
# Go up from tests/ -> optionchain/ -> lib/ -> project root
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from lib.optionchain.payoff import Direction, OptionLeg, OptionType


def make_leg(strike=100.0, premium=5.0, quantity=1, option_type="CALL", direction="BUY"):
    """Build an OptionLeg from plain values."""
    return OptionLeg(
        strike=strike,
        premium=premium,
        quantity=quantity,
        option_type=OptionType(option_type),
        direction=Direction(direction),
    )


@pytest.fixture
def long_call_payload():
    """Builder payload for a single long call (K=100, premium 5)."""
    return {
        "legs": [
            {"strike": 100, "premium": 5, "quantity": 1, "optionType": "CALL", "direction": "BUY"},
        ]
    }


@pytest.fixture
def iron_condor_payload():
    """Short 95/105 strangle with 90/110 wings, lot size 50."""
    return {
        "legs": [
            {"strike": 90, "premium": 1, "quantity": 50, "optionType": "PUT", "direction": "BUY"},
            {"strike": 95, "premium": 3, "quantity": 50, "optionType": "PUT", "direction": "SELL"},
            {"strike": 105, "premium": 3, "quantity": 50, "optionType": "CALL", "direction": "SELL"},
            {"strike": 110, "premium": 1, "quantity": 50, "optionType": "CALL", "direction": "BUY"},
        ]
    }
