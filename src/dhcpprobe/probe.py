"""
DHCP server liveness probe.

A single-threaded state machine over an asyncio event loop used as a
plain reactor. Three watchers race for the outcome:

- input: persistent reader on the socket; any datagram is success
- retry: timer that retransmits the DISCOVER every ``interval``
- maxwait: one-shot timer that ends the probe with a timeout

The first watcher to reach a terminal state decides the result, stops
the loop, and the driver tears the other watchers down.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from enum import Enum

from dhcpprobe.config import ProbeConfig
from dhcpprobe.packet import BOOTP_MIN_LEN, RelayPacket, describe_reply
from dhcpprobe.privileges import drop_privileges
from dhcpprobe.transport import DHCP_PORT, RelayTransport

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_TIMEOUT = 2

# Large enough for any reply over Ethernet; content is never inspected
RECV_SIZE = max(BOOTP_MIN_LEN, 1500)

# secs is a 16-bit field
SECS_MAX = 0xFFFF


class ProbeResult(Enum):
    """Outcome of a probe run."""
    PENDING = "pending"
    SUCCESS = "success"
    TIMEOUT = "timeout"
    FATAL = "fatal"

    @property
    def exit_code(self) -> int | None:
        return _EXIT_CODES.get(self)


_EXIT_CODES = {
    ProbeResult.SUCCESS: EXIT_SUCCESS,
    ProbeResult.FATAL: EXIT_FAILURE,
    ProbeResult.TIMEOUT: EXIT_TIMEOUT,
}


class ProbeSession:
    """
    One probe of one server.

    Owns the packet and the transport for its whole life. Every watcher
    handler is a method on the session and checks that the result is
    still pending before acting, so the result is written at most once.

    Usage:
        session = ProbeSession(transport, packet, interval=2, retries=3, maxwait=8)
        result = session.run()
        sys.exit(result.exit_code)
    """

    def __init__(
        self,
        transport: RelayTransport,
        packet: RelayPacket,
        interval: float,
        retries: int,
        maxwait: float,
        verbose: bool = False,
    ):
        self.transport = transport
        self.packet = packet
        self.interval = interval
        self.retries_remaining = retries
        self.maxwait = maxwait
        self.verbose = verbose

        self.elapsed_secs = 0
        self.packets_sent = 0
        self.result = ProbeResult.PENDING
        self.error: OSError | None = None
        self.error_context: str | None = None
        self.reply: bytes | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._maxwait_handle: asyncio.TimerHandle | None = None
        self._writing = False
        self._owed_sends = 0

    @property
    def done(self) -> bool:
        return self.result is not ProbeResult.PENDING

    def run(self, loop: asyncio.AbstractEventLoop | None = None) -> ProbeResult:
        """
        Drive the probe to a terminal result.

        Args:
            loop: Event loop to use; a private one is created (and closed)
                when omitted

        Returns:
            The terminal ProbeResult
        """
        own_loop = loop is None
        if own_loop:
            loop = asyncio.new_event_loop()

        try:
            self.start(loop)
            if not self.done:
                loop.run_forever()
        finally:
            self._teardown()
            if own_loop:
                loop.close()

        return self.result

    def start(self, loop: asyncio.AbstractEventLoop):
        """Arm all three watchers and send the first packet."""
        self._loop = loop

        loop.add_reader(self.transport.fileno(), self._input)
        self._maxwait_handle = loop.call_later(self.maxwait, self._maxwait)

        logger.debug(
            f"Probing {self.packet!r}: {self.retries_remaining} tries "
            f"every {self.interval} s, waiting up to {self.maxwait} s"
        )
        self._retry()

    def _retry(self):
        self._retry_handle = None
        if self.done:
            return

        self.packet.secs = min(int(self.elapsed_secs), SECS_MAX)
        self._transmit()
        if self.done:
            return

        self.retries_remaining -= 1
        if self.retries_remaining <= 0:
            self.retries_remaining = 0
            logger.debug("No retries left, waiting for a reply")
            return

        self.elapsed_secs += self.interval
        self._retry_handle = self._loop.call_later(self.interval, self._retry)

    def _send(self) -> bool:
        """Send the packet once. False only if the socket would block."""
        data = self.packet.to_bytes()

        while True:
            try:
                self.transport.send(data)
            except InterruptedError:
                continue
            except BlockingIOError:
                return False
            except OSError as e:
                self._fail("transmit", e)
                return True
            break

        self.packets_sent += 1
        logger.debug(f"Sent DHCPDISCOVER #{self.packets_sent} (secs={self.packet.secs})")
        return True

    def _transmit(self):
        if not self._send():
            # Owed until the writable watcher gets it out
            self._owed_sends += 1
            self._wait_writable()

    def _wait_writable(self):
        if self._writing:
            return
        self._writing = True
        self._loop.add_writer(self.transport.fileno(), self._writable)

    def _writable(self):
        while self._owed_sends and not self.done:
            if not self._send():
                return
            self._owed_sends -= 1

        self._loop.remove_writer(self.transport.fileno())
        self._writing = False

    def _input(self):
        if self.done:
            return

        try:
            data = self.transport.recv(RECV_SIZE)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            self._fail("input", e)
            return

        self.reply = data
        logger.debug(f"Received {describe_reply(data)}")
        self._finish(ProbeResult.SUCCESS)

    def _maxwait(self):
        self._maxwait_handle = None
        if self.done:
            return

        if self.verbose:
            logger.warning("timeout waiting for reply")
        self._finish(ProbeResult.TIMEOUT)

    def _fail(self, context: str, error: OSError):
        self.error = error
        self.error_context = context
        logger.debug(f"{context}: {error}")
        self._finish(ProbeResult.FATAL)

    def _finish(self, result: ProbeResult):
        if self.done:
            return
        self.result = result
        if self._loop is not None and self._loop.is_running():
            self._loop.stop()

    def _teardown(self):
        if self._loop is None or self._loop.is_closed():
            return

        self._loop.remove_reader(self.transport.fileno())
        if self._writing:
            self._loop.remove_writer(self.transport.fileno())
            self._writing = False
        self._owed_sends = 0

        for handle in (self._retry_handle, self._maxwait_handle):
            if handle is not None:
                handle.cancel()
        self._retry_handle = None
        self._maxwait_handle = None


def probe(
    config: ProbeConfig,
    port: int | str = DHCP_PORT,
    local_port: int | str | None = None,
) -> ProbeSession:
    """
    Run one complete probe from a validated configuration.

    Opens the transport, drops privileges, builds the packet and runs the
    session. Configuration and transport problems raise; I/O failures
    during the run are reported through the session's result.

    Returns:
        The finished ProbeSession
    """
    mac = config.mac_bytes

    with RelayTransport.open(
        config.server, config.local, port=port, local_port=local_port,
    ) as transport:
        drop_privileges(config.user)

        packet = RelayPacket.from_transport(transport, mac)
        session = ProbeSession(
            transport,
            packet,
            interval=config.interval,
            retries=config.retries,
            maxwait=config.maxwait,
            verbose=config.verbose,
        )
        session.run()

    return session
