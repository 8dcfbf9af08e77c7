"""bosstimer - boss respawn tracker for Discord."""

__version__ = "0.1.0"
