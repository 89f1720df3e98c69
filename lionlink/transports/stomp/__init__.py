from lionlink.transports.stomp.frame import StompFrame, decode, encode
from lionlink.transports.stomp.transport import (
    ReconnectThrottle,
    StompSession,
    StompTransport,
    TransportState,
)

__all__ = [
    "StompFrame",
    "StompSession",
    "StompTransport",
    "ReconnectThrottle",
    "TransportState",
    "decode",
    "encode",
]
