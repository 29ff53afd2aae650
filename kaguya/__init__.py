"""Kaguya — versioned backup vaults for game saves and configuration."""

__version__ = "0.3.0"
