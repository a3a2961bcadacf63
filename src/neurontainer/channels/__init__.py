"""
neurontainer Channels

The Neuro WebSocket transport and the connection manager on top of it.
"""

from .neuro_client import NeuroClient, parse_action_message
from .connection import ConnectionManager, normalize_neuro_url

__all__ = [
    "NeuroClient",
    "parse_action_message",
    "ConnectionManager",
    "normalize_neuro_url",
]
