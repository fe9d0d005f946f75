"""Polyfolio: portfolio reconciliation for Polymarket wallets."""

__version__ = "0.1.0"
