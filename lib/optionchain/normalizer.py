"""
Option chain normalization.

Reshapes the raw upstream option-chain JSON into the schema served by
GET /open-interest.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)


class NormalizationError(ValueError):
    """Raw upstream payload does not look like an option chain."""


def _safe_float(value: Any) -> Optional[float]:
    """Safely convert value to float."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    """Safely convert value to int."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def _normalize_leg(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Normalize one side (CE or PE) of a strike row."""
    if not isinstance(raw, dict):
        return None

    return {
        # Open interest
        "openInterest": _safe_int(raw.get("openInterest")),
        "changeInOpenInterest": _safe_int(raw.get("changeinOpenInterest")),
        "pChangeInOpenInterest": _safe_float(raw.get("pchangeinOpenInterest")),

        # Activity
        "volume": _safe_int(raw.get("totalTradedVolume")),
        "impliedVolatility": _safe_float(raw.get("impliedVolatility")),

        # Pricing
        "lastPrice": _safe_float(raw.get("lastPrice")),
        "change": _safe_float(raw.get("change")),
        "pChange": _safe_float(raw.get("pChange")),
        "bidPrice": _safe_float(raw.get("bidprice")),
        "bidQty": _safe_int(raw.get("bidQty")),
        "askPrice": _safe_float(raw.get("askPrice")),
        "askQty": _safe_int(raw.get("askQty")),
    }


def _side_totals(rows: List[Dict[str, Any]], side: str) -> Dict[str, int]:
    open_interest = 0
    volume = 0
    for row in rows:
        leg = row.get(side)
        if not leg:
            continue
        open_interest += leg.get("openInterest") or 0
        volume += leg.get("volume") or 0
    return {"openInterest": open_interest, "volume": volume}


def format_data(raw: Any, identifier: str) -> Dict[str, Any]:
    """
    Normalize a raw option-chain response.

    Args:
        raw: Decoded upstream JSON ({"records": {...}, "filtered": {...}})
        identifier: Symbol the chain was requested for

    Returns:
        Dict with identifier, underlyingValue, timestamp, expiryDates,
        strikePrices, data rows (CE/PE per strike and expiry) and totals

    Raises:
        NormalizationError: if the payload has no records (the upstream
            returns an empty object when the session cookie is rejected)
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("records"), dict):
        raise NormalizationError(f"No option chain records in upstream response for {identifier}")

    records = raw["records"]
    expiry_dates = [str(e) for e in records.get("expiryDates") or []]
    expiry_order = {expiry: i for i, expiry in enumerate(expiry_dates)}

    rows: List[Dict[str, Any]] = []
    for entry in records.get("data") or []:
        if not isinstance(entry, dict):
            continue
        strike = _safe_float(entry.get("strikePrice"))
        if strike is None:
            logger.debug(f"Skipping row without strike price for {identifier}")
            continue
        rows.append({
            "strikePrice": strike,
            "expiryDate": str(entry.get("expiryDate") or ""),
            "CE": _normalize_leg(entry.get("CE")),
            "PE": _normalize_leg(entry.get("PE")),
        })

    rows.sort(key=lambda r: (expiry_order.get(r["expiryDate"], len(expiry_order)), r["strikePrice"]))

    strike_prices = sorted({
        s for s in (_safe_float(v) for v in records.get("strikePrices") or []) if s is not None
    } | {row["strikePrice"] for row in rows})

    call_totals = _side_totals(rows, "CE")
    put_totals = _side_totals(rows, "PE")
    if call_totals["openInterest"]:
        pcr = round(put_totals["openInterest"] / call_totals["openInterest"], 2)
    else:
        pcr = 0.0

    return {
        "identifier": identifier,
        "underlyingValue": _safe_float(records.get("underlyingValue")),
        "timestamp": records.get("timestamp"),
        "expiryDates": expiry_dates,
        "strikePrices": strike_prices,
        "data": rows,
        "totals": {
            "CE": call_totals,
            "PE": put_totals,
            "pcr": pcr,
        },
    }
