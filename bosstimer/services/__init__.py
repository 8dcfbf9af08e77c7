"""Services"""
from .commands import CommandRouter
from .live_board import LiveStatusBoard
from .tracker_service import BossTracker

__all__ = [
    "BossTracker",
    "CommandRouter",
    "LiveStatusBoard",
]
