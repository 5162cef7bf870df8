"""Protocol definitions for pluggable collaborators."""

from .persistence import MessagePersistence
from .roster import RosterProvider
from .transport import FrameHandler, ReconnectListener, Transport

__all__ = [
    "FrameHandler",
    "MessagePersistence",
    "ReconnectListener",
    "RosterProvider",
    "Transport",
]
