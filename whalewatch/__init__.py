"""Whale Watch - Solana whale frenzy detection, rejected-token review and mint monitoring."""

__version__ = "1.0.0"
__author__ = "Whale Watch Team"
__description__ = "Detect whale frenzies, revive soft-rejected tokens and watch spawner wallets for new mints"
