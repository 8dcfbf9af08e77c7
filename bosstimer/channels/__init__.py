"""Chat channels"""
from .base import Channel, Message
from .discord import DiscordAnnounceSink, DiscordChannel

__all__ = [
    "Channel",
    "Message",
    "DiscordChannel",
    "DiscordAnnounceSink",
]
