import logging
import socket

import pytest

import dhcpprobe.config


class FakeTimer:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Manually clocked stand-in for the asyncio loop's reactor API."""

    def __init__(self):
        self.now = 0.0
        self.timers = []
        self.readers = {}
        self.writers = {}
        self.running = True

    def time(self):
        return self.now

    def call_later(self, delay, callback, *args):
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def add_reader(self, fd, callback, *args):
        self.readers[fd] = (callback, args)

    def remove_reader(self, fd):
        return self.readers.pop(fd, None) is not None

    def add_writer(self, fd, callback, *args):
        self.writers[fd] = (callback, args)

    def remove_writer(self, fd):
        return self.writers.pop(fd, None) is not None

    def is_running(self):
        return self.running

    def is_closed(self):
        return False

    def stop(self):
        self.running = False

    @property
    def pending_timers(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, until):
        """Fire due timers in deadline order until ``until`` or a stop."""
        while self.running:
            due = [t for t in self.pending_timers if t.when <= until]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback(*timer.args)
        if self.running:
            self.now = until

    def fire_reader(self, fd):
        callback, args = self.readers[fd]
        callback(*args)

    def fire_writer(self, fd):
        callback, args = self.writers[fd]
        callback(*args)


class FakeTransport:
    """Records sends; replays queued datagrams or errors on recv."""

    local_address = "192.0.2.10"

    def __init__(self, loop=None):
        self.loop = loop
        self.sent = []
        self.send_errors = []
        self.incoming = []

    def fileno(self):
        return 42

    def send(self, data):
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append((self.loop.now if self.loop else None, bytes(data)))
        return len(data)

    def recv(self, size):
        if not self.incoming:
            raise BlockingIOError()
        item = self.incoming.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item[:size]

    @property
    def send_times(self):
        return [when for when, _ in self.sent]


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def transport(loop):
    return FakeTransport(loop)


@pytest.fixture
def mac():
    return bytes.fromhex("001122334455")


@pytest.fixture
def udp_server():
    """A loopback UDP socket playing the DHCP server."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the developer's environment and .env files out of the tests."""
    for name in ("DHCPPROBE_INTERVAL", "DHCPPROBE_TRIES", "DHCPPROBE_WAIT",
                 "DHCPPROBE_LOCAL", "DHCPPROBE_USER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(dhcpprobe.config, "ENV_LOCATIONS", [])


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("dhcpprobe")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
