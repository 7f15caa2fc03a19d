"""Meridian: unified position accounting for FX, stocks and crypto."""

__version__ = "1.0.0"
