"""
Instrument profiles, rule checks and price formatting.

Profiles decide whether the session filter applies and which extra
confirmations a TRADE_SETUP needs. Broker-prefixed symbols (``frxXAUUSD``)
resolve to the same profile as the bare symbol.
"""

from typing import Any, Optional

from ..models.analysis import (
    BiasAnalysis,
    ExecutionSignal,
    InstrumentProfile,
    InstrumentType,
    LiquidityAnalysis,
)

SYNTHETIC_MARKERS = ("VOLATILITY", "V50", "V75", "V100", "V150", "V200", "V250")
SYNTHETIC_PREFIXES = ("R_", "1HZ")
METAL_MARKERS = ("XAU", "GOLD", "XAG", "SILVER", "XPD", "XPT")
CURRENCY_MARKERS = ("USD", "EUR", "GBP", "AUD", "NZD", "CAD", "CHF")


def bare_symbol(symbol: str) -> str:
    """Upper-cased symbol without the ``FRX`` broker prefix."""
    upper = symbol.upper()
    return upper[3:] if upper.startswith("FRX") else upper


def is_synthetic(symbol: str) -> bool:
    bare = bare_symbol(symbol)
    return any(m in bare for m in SYNTHETIC_MARKERS) or bare.startswith(SYNTHETIC_PREFIXES)


def price_decimals(symbol: str) -> int:
    """Display precision for an instrument."""
    bare = bare_symbol(symbol)

    if any(m in bare for m in METAL_MARKERS):
        return 2
    if "JPY" in bare:
        return 3
    if is_synthetic(bare) or "US_OTC" in bare:
        return 2
    if any(m in bare for m in CURRENCY_MARKERS):
        return 5
    if "INDEX" in bare or "STOCK" in bare:
        return 2
    return 5


def format_price(price: Optional[float], decimals: int) -> str:
    """Fixed precision with thousands separators; ``N/A`` for missing prices."""
    if price is None:
        return "N/A"
    return f"{price:,.{decimals}f}"


def resolve_profile(symbol: str, overrides: Optional[dict[str, Any]] = None) -> InstrumentProfile:
    """
    Build the profile for a symbol.

    Args:
        symbol: Instrument symbol as the caller supplied it
        overrides: Profile keys from instruments.yaml, applied last

    Returns:
        InstrumentProfile with the upper-cased symbol
    """
    upper = symbol.upper()

    if is_synthetic(upper):
        values: dict[str, Any] = {
            "type": InstrumentType.SYNTHETIC,
            "use_session_filter": False,
            "prioritize_mss": True,
            "ignore_order_blocks": True,
            "full_ict_model": False,
        }
    else:
        # Named majors/metals and unknown symbols share the full model
        values = {
            "type": InstrumentType.FOREX,
            "use_session_filter": True,
            "prioritize_mss": False,
            "ignore_order_blocks": False,
            "full_ict_model": True,
        }
    values["price_decimals"] = price_decimals(upper)

    for key, value in (overrides or {}).items():
        if key == "type":
            values[key] = InstrumentType(value)
        elif key in values:
            values[key] = value

    return InstrumentProfile(symbol=upper, **values)


def instrument_rule_failure(
    profile: InstrumentProfile,
    bias: BiasAnalysis,
    liquidity: LiquidityAnalysis,
    execution: ExecutionSignal,
) -> Optional[str]:
    """
    Check the extra confirmations a profile demands of a TRADE_SETUP.

    Returns:
        Reason for the downgrade, or None when the rules pass
    """
    if profile.prioritize_mss and not execution.mss_confirmed:
        return "Instrument requires a confirmed MSS"

    if profile.full_ict_model:
        has_fvgs = bool(bias.fvgs) and bool(liquidity.fvgs) and execution.fvg_details is not None
        if not has_fvgs:
            return "Full ICT model requires FVGs on 2h, 15m and 5m"
        if not (liquidity.displacement_detected and execution.mss_confirmed):
            return "Full ICT model requires 15m displacement and a confirmed MSS"

    return None
