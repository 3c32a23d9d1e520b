"""
sessions/__init__.py

Public API for the sessions sub-package.
"""

from .models import FlowKey, Session
from .reconstructor import SessionReconstructor, find_tcp_sessions

__all__ = [
    "FlowKey",
    "Session",
    "SessionReconstructor",
    "find_tcp_sessions",
]
