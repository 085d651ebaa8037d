"""Default configuration parameters for the signal engine."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FVGParams:
    """Fair value gap detection parameters."""
    min_bars: int = 3                                # A gap needs three candles; fewer returns nothing


@dataclass(frozen=True)
class DisplacementParams:
    """Displacement candle thresholds relative to the average range."""
    range_mult: float = 1.5                          # Candle range vs average range
    body_ratio: float = 0.7                          # Body share of the candle range
    body_mult: float = 1.2                           # Body size vs average range
    strong_threshold: float = 0.6                    # Strength above this is "strong"


@dataclass(frozen=True)
class MSSParams:
    """Market structure shift parameters."""
    min_bars: int = 3                                # Single-bar swings need both neighbours
    confirmation_bars: int = 3                       # Forward window for confirmation


@dataclass(frozen=True)
class LiquidityParams:
    """Equal highs/lows pool parameters."""
    tolerance: float = 0.001                         # 0.1% relative tolerance
    min_members: int = 2
    asian_range_bars: int = 4


@dataclass(frozen=True)
class SupportResistanceParams:
    """Pivot-based support/resistance parameters."""
    min_bars: int = 5
    tolerance: float = 0.005                         # 0.5% relative tolerance
    recent_bars: int = 10                            # Touch newer than the Nth-from-last bar is recent
    min_strength: float = 0.2                        # Levels at or below are discarded
    key_level_count: int = 5


@dataclass(frozen=True)
class ClusteringParams:
    """Price bucketing strategy shared by liquidity and S/R detection."""
    mode: str = "sorted"                             # "sorted" (order independent) or "greedy" (legacy)


@dataclass(frozen=True)
class WindowParams:
    """Analysis lookback window."""
    hours: int = 48
    max_bars_2h: int = 24
    max_bars_15m: int = 192
    max_bars_5m: int = 576
    swing_point_count: int = 5


@dataclass(frozen=True)
class ExecutionParams:
    """Entry/stop/target derivation on the execution timeframe."""
    stop_buffer_pct: float = 0.001                   # Stop sits 0.1% beyond the FVG boundary
    target_risk_multiple: float = 2.0                # Projected target when no opposing liquidity fits
    min_liquidity_rr: float = 1.0                    # Opposing liquidity target needs at least 1R
    reaction_bars: int = 5
    reaction_min_move_pct: float = 0.5
    high_confidence_rr: float = 2.0


@dataclass(frozen=True)
class CooldownParams:
    """Cooldown windows applied after a batch of trades closes."""
    loss_minutes: int = 13
    win_minutes: int = 10
    lock_timeout_seconds: float = 10.0               # Wait for a concurrent close or create on the same owner


@dataclass(frozen=True)
class SessionParams:
    """Kill zone windows in minutes from 00:00 UTC (inclusive)."""
    london_open_start: int = 8 * 60
    london_open_end: int = 12 * 60
    ny_kill_zone_start: int = 13 * 60
    ny_kill_zone_end: int = 16 * 60


@dataclass(frozen=True)
class FeedParams:
    """Outbound market data and broker call limits."""
    timeout_seconds: float = 10.0
    max_retries: int = 2
    retry_delay_seconds: float = 0.5
    max_workers: int = 4


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    fvg: FVGParams
    displacement: DisplacementParams
    mss: MSSParams
    liquidity: LiquidityParams
    support_resistance: SupportResistanceParams
    clustering: ClusteringParams
    window: WindowParams
    execution: ExecutionParams
    cooldown: CooldownParams
    session: SessionParams
    feeds: FeedParams


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        fvg=FVGParams(),
        displacement=DisplacementParams(),
        mss=MSSParams(),
        liquidity=LiquidityParams(),
        support_resistance=SupportResistanceParams(),
        clustering=ClusteringParams(),
        window=WindowParams(),
        execution=ExecutionParams(),
        cooldown=CooldownParams(),
        session=SessionParams(),
        feeds=FeedParams(),
    )
