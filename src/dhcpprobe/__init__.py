"""
dhcpprobe - DHCP server liveness probe

Impersonates a DHCP relay agent, sends a DHCPDISCOVER to one server and
reports through the exit status whether any reply came back in time.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from dhcpprobe.config import ConfigError, ProbeConfig
from dhcpprobe.packet import PacketError, RelayPacket
from dhcpprobe.probe import ProbeResult, ProbeSession, probe
from dhcpprobe.transport import RelayTransport, TransportError

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "PacketError",
    "ProbeConfig",
    "ProbeResult",
    "ProbeSession",
    "RelayPacket",
    "RelayTransport",
    "TransportError",
    "probe",
]
