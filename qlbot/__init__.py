"""Telegram webhook bot for the Qinglong task panel."""

__version__ = "0.1.0"
