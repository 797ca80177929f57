"""Game Vault: social game tracking with community challenges."""

__version__ = "0.1.0"
