"""
Option Chain Proxy Module

Fetches option-chain data from NSE (cookie session + browser headers),
normalizes it, and computes expiry payoff curves for multi-leg strategies.

Example usage:
    from lib.optionchain import parse_strategy, compute_payoff, payoff_to_dict

    strategy = parse_strategy({"legs": [
        {"strike": 100, "premium": 5, "quantity": 1, "optionType": "CALL", "direction": "BUY"},
    ]})
    result = compute_payoff(strategy)
    print(payoff_to_dict(result)["breakevens"])   # [105.0]
"""

from .payoff import (
    compute_payoff,
    OptionLeg,
    OptionType,
    Direction,
    StrategyDefinition,
    PayoffResult,
    Bounded,
    Unbounded,
    ValidationError,
)
from .schemas import parse_strategy, payoff_to_dict
from .normalizer import format_data, NormalizationError
from .nse_client import NSEClient, RetryPolicy, UpstreamError, CookieError

__all__ = [
    'compute_payoff',
    'OptionLeg',
    'OptionType',
    'Direction',
    'StrategyDefinition',
    'PayoffResult',
    'Bounded',
    'Unbounded',
    'ValidationError',
    'parse_strategy',
    'payoff_to_dict',
    'format_data',
    'NormalizationError',
    'NSEClient',
    'RetryPolicy',
    'UpstreamError',
    'CookieError',
]
