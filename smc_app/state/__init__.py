"""
Signal and trade lifecycle.

Watchlist signals move watching -> signal_ready -> active -> hit_sl | hit_tp.
Trades close in batches and leave a cooldown that blocks new trades for the
same owner until it expires.
"""
