"""Martingale-staked trader for fixed-window Polymarket up/down markets."""

__version__ = "0.2.0"
