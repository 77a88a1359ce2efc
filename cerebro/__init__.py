"""Cerebro — streaming local/remote completions with capability gating."""

__version__ = "0.4.0"
