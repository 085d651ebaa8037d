"""Durable storage for analysis runs, watchlist signals, cooldowns and trades."""
