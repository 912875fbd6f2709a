"""Salvage Parts - catalog salvaged parts and find substitutes by physical properties."""

__version__ = "0.3.0"
