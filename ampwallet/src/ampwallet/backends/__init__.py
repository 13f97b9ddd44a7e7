"""
Remote session implementations.

Available backends:
- GreenSession: Green backend over WAMP v2 JSON on a websocket
"""

from ampwallet.backends.base import (
    AccountAlreadyExists,
    LoginRejected,
    NotAuthorized,
    RemoteCallError,
    RemoteSession,
    SessionError,
    TransportError,
)
from ampwallet.backends.green import GreenSession

__all__ = [
    "AccountAlreadyExists",
    "GreenSession",
    "LoginRejected",
    "NotAuthorized",
    "RemoteCallError",
    "RemoteSession",
    "SessionError",
    "TransportError",
]
