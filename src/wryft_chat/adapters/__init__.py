"""Concrete implementations of the collaborator interfaces."""

from .rest.client import RestClient
from .transport.memory import LoopbackHub, LoopbackTransport
from .transport.websocket import WebSocketTransport

__all__ = [
    "LoopbackHub",
    "LoopbackTransport",
    "RestClient",
    "WebSocketTransport",
]
