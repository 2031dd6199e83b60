"""
DHCP relay packet construction.

Builds the fixed-size DHCPDISCOVER a relay agent would forward to a
server: hops is 1 and giaddr carries the probe's own bound address, so
the server answers the probe directly instead of broadcasting.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import os
import socket
import struct
from enum import IntEnum

from netaddr import AddrFormatError, IPAddress

# DHCP Constants
DHCP_SERVER_PORT = 67
DHCP_MAGIC_COOKIE = bytes([99, 130, 83, 99])  # 0x63825363

# Hardware types
HTYPE_ETHERNET = 1

# DHCP Operation codes
BOOTREQUEST = 1
BOOTREPLY = 2

# Fixed header (op .. file) followed by the cookie at offset 236
BOOTP_HEADER_FORMAT = '>BBBBIHH4s4s4s4s16s64s128s'
BOOTP_HEADER_LEN = struct.calcsize(BOOTP_HEADER_FORMAT)
BOOTP_MIN_LEN = 300

SECS_OFFSET = 8
ETHER_ADDR_LEN = 6


class DHCPMessageType(IntEnum):
    """DHCP message types (Option 53)."""
    DISCOVER = 1
    OFFER = 2
    REQUEST = 3
    DECLINE = 4
    ACK = 5
    NAK = 6
    RELEASE = 7
    INFORM = 8


class DHCPOption(IntEnum):
    """DHCP options used by the probe."""
    PAD = 0
    SUBNET_MASK = 1
    TIME_OFFSET = 2
    ROUTER = 3
    DNS_SERVER = 6
    HOSTNAME = 12
    DOMAIN_NAME = 15
    BROADCAST_ADDRESS = 28
    MESSAGE_TYPE = 53
    SERVER_ID = 54
    PARAMETER_REQUEST = 55
    TFTP_SERVER_NAME = 66
    BOOTFILE_NAME = 67
    DOMAIN_SEARCH = 119
    CLASSLESS_STATIC_ROUTES = 121
    END = 255


# Parameter request list; only affects what a server may return
REQUESTED_OPTIONS = (
    DHCPOption.SUBNET_MASK,
    DHCPOption.BROADCAST_ADDRESS,
    DHCPOption.TIME_OFFSET,
    DHCPOption.CLASSLESS_STATIC_ROUTES,
    DHCPOption.ROUTER,
    DHCPOption.DOMAIN_NAME,
    DHCPOption.DOMAIN_SEARCH,
    DHCPOption.DNS_SERVER,
    DHCPOption.HOSTNAME,
    DHCPOption.BOOTFILE_NAME,
    DHCPOption.TFTP_SERVER_NAME,
)


class PacketError(Exception):
    """Packet cannot be built from the given inputs."""
    pass


class RelayPacket:
    """
    A DHCPDISCOVER as sent by a relay agent.

    The buffer is always BOOTP_MIN_LEN bytes. After construction the only
    field that changes is ``secs``, which the retry path rewrites before
    each retransmission.

    Usage:
        packet = RelayPacket(bytes.fromhex("001122334455"), "192.0.2.10")
        packet.secs = 2
        sock.send(packet.to_bytes())
    """

    def __init__(self, mac: bytes, giaddr: str, xid: int | None = None):
        if len(mac) != ETHER_ADDR_LEN:
            raise PacketError(f"hardware address must be {ETHER_ADDR_LEN} bytes, got {len(mac)}")

        try:
            relay = IPAddress(giaddr)
        except (AddrFormatError, ValueError, TypeError):
            raise PacketError(f"invalid relay agent address {giaddr!r}") from None
        if relay.version != 4:
            raise PacketError(f"relay agent address {giaddr} is not IPv4")

        self.mac = bytes(mac)
        self.giaddr = str(relay)
        self.xid = (os.getpid() if xid is None else xid) & 0xFFFFFFFF
        self._secs = 0
        self._buffer = self._build()

    def _build(self) -> bytearray:
        # Pad MAC to 16 bytes
        chaddr = self.mac + b'\x00' * (16 - ETHER_ADDR_LEN)

        header = struct.pack(
            BOOTP_HEADER_FORMAT,
            BOOTREQUEST, HTYPE_ETHERNET, ETHER_ADDR_LEN, 1,
            self.xid, self._secs, 0,
            b'\x00\x00\x00\x00',  # ciaddr
            b'\x00\x00\x00\x00',  # yiaddr
            b'\x00\x00\x00\x00',  # siaddr
            socket.inet_aton(self.giaddr),
            chaddr,
            b'\x00' * 64,  # sname
            b'\x00' * 128,  # file
        )

        packet = bytearray(header)
        packet += DHCP_MAGIC_COOKIE

        packet += bytes([DHCPOption.MESSAGE_TYPE, 1, DHCPMessageType.DISCOVER])

        packet += bytes([DHCPOption.PARAMETER_REQUEST, len(REQUESTED_OPTIONS)])
        packet += bytes(REQUESTED_OPTIONS)

        packet += bytes([DHCPOption.END])

        # Pad to minimum size
        packet += b'\x00' * (BOOTP_MIN_LEN - len(packet))
        return packet

    @classmethod
    def from_transport(cls, transport, mac: bytes) -> "RelayPacket":
        """Build a packet whose giaddr is the transport's bound address."""
        return cls(mac, transport.local_address)

    @property
    def secs(self) -> int:
        return self._secs

    @secs.setter
    def secs(self, value: int):
        if not 0 <= value <= 0xFFFF:
            raise PacketError(f"secs {value} out of range")
        self._secs = value
        struct.pack_into('>H', self._buffer, SECS_OFFSET, value)

    def to_bytes(self) -> bytes:
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        mac = ":".join(f"{b:02x}" for b in self.mac)
        return f"RelayPacket(mac={mac}, giaddr={self.giaddr}, xid=0x{self.xid:08x}, secs={self._secs})"


def _parse_options(options: bytes) -> dict[int, bytes]:
    """First value of each option, stopping at END or truncation."""
    parsed = {}
    i = 0
    while i < len(options):
        option = options[i]

        if option == DHCPOption.PAD:
            i += 1
            continue

        if option == DHCPOption.END or i + 1 >= len(options):
            break

        length = options[i + 1]
        value = options[i + 2:i + 2 + length]
        if len(value) < length:
            break
        parsed.setdefault(option, value)
        i += 2 + length

    return parsed


def _message_type(options: dict[int, bytes]) -> DHCPMessageType | None:
    value = options.get(DHCPOption.MESSAGE_TYPE)
    if value is None or len(value) != 1:
        return None
    try:
        return DHCPMessageType(value[0])
    except ValueError:
        return None


def describe_reply(data: bytes) -> str:
    """
    Summarise a received datagram for diagnostics.

    Never rejects anything: the probe treats any datagram as proof the
    server is alive, this only makes the debug log more useful.
    """
    if len(data) < BOOTP_HEADER_LEN + len(DHCP_MAGIC_COOKIE):
        return f"non-DHCP datagram ({len(data)} bytes)"

    if data[0] != BOOTREPLY or data[BOOTP_HEADER_LEN:BOOTP_HEADER_LEN + 4] != DHCP_MAGIC_COOKIE:
        return f"non-DHCP datagram ({len(data)} bytes)"

    options = _parse_options(data[BOOTP_HEADER_LEN + 4:])
    message_type = _message_type(options)
    name = f"DHCP{message_type.name}" if message_type else "BOOTREPLY"
    xid = struct.unpack_from(">I", data, 4)[0]

    server_id = options.get(DHCPOption.SERVER_ID)
    if server_id is not None and len(server_id) == 4:
        return f"{name} from {socket.inet_ntoa(server_id)} xid 0x{xid:08x} ({len(data)} bytes)"
    return f"{name} xid 0x{xid:08x} ({len(data)} bytes)"
