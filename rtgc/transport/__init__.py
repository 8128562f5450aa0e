"""
Transport module - Boundary with the media transport.

The core never moves media itself; it calls a Transport at membership
and media boundaries.
"""

from rtgc.transport.base import Transport, BaseTransport, NullTransport
from rtgc.transport.loopback import LoopbackTransport, LoopbackConfig, CallRecord

__all__ = [
    "Transport",
    "BaseTransport",
    "NullTransport",
    "LoopbackTransport",
    "LoopbackConfig",
    "CallRecord",
]
