import errno
import socket
from types import SimpleNamespace

import pytest
from click.testing import CliRunner

import dhcpprobe.cli
from dhcpprobe.cli import main
from dhcpprobe.probe import ProbeResult
from dhcpprobe.transport import TransportError

BASE_ARGS = ["-h", "00:11:22:33:44:55", "-s", "203.0.113.5"]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def probes(monkeypatch):
    """Replace the probe run with a recorder returning a canned session."""
    calls = []
    outcome = {"result": ProbeResult.SUCCESS, "error": None, "context": None, "raises": None}

    def fake_probe(config):
        calls.append(config)
        if outcome["raises"]:
            raise outcome["raises"]
        return SimpleNamespace(
            result=outcome["result"],
            error=outcome["error"],
            error_context=outcome["context"],
        )

    monkeypatch.setattr(dhcpprobe.cli, "probe", fake_probe)
    return SimpleNamespace(calls=calls, outcome=outcome)


def test_success_exits_zero(runner, probes):
    result = runner.invoke(main, BASE_ARGS)
    assert result.exit_code == 0
    config = probes.calls[0]
    assert (config.mac, config.server, config.local) == ("00:11:22:33:44:55", "203.0.113.5", None)
    assert (config.interval, config.retries, config.maxwait) == (2, 3, 8)


def test_timeout_exits_two(runner, probes):
    probes.outcome["result"] = ProbeResult.TIMEOUT
    assert runner.invoke(main, BASE_ARGS).exit_code == 2


def test_fatal_io_exits_one(runner, probes):
    probes.outcome.update(
        result=ProbeResult.FATAL,
        error=OSError(errno.ENETUNREACH, "Network is unreachable"),
        context="transmit",
    )
    result = runner.invoke(main, BASE_ARGS)
    assert result.exit_code == 1
    assert "transmit: Network is unreachable" in result.output


def test_options_passed_through(runner, probes):
    args = BASE_ARGS + ["-l", "192.0.2.1", "-i", "1", "-t", "5", "-w", "10", "-u", "nobody", "-v"]
    assert runner.invoke(main, args).exit_code == 0
    config = probes.calls[0]
    assert config.local == "192.0.2.1"
    assert (config.interval, config.retries, config.maxwait) == (1, 5, 10)
    assert config.user == "nobody"
    assert config.verbose is True


def test_budget_violation_rejected_before_probe(runner, probes):
    result = runner.invoke(main, BASE_ARGS + ["-t", "5", "-i", "2", "-w", "8"])
    assert result.exit_code == 1
    assert "tries 5 by interval 2 s > wait 8 s" in result.output
    assert probes.calls == []


def test_invalid_mac(runner, probes):
    result = runner.invoke(main, ["-h", "not-a-mac", "-s", "203.0.113.5"])
    assert result.exit_code == 1
    assert "invalid mac not-a-mac" in result.output
    assert probes.calls == []


@pytest.mark.parametrize("args", [
    ["-t", "40"],
    ["-i", "0"],
    ["-w", "61"],
    ["-t", "three"],
])
def test_out_of_range_options_exit_one(runner, probes, args):
    result = runner.invoke(main, BASE_ARGS + args)
    assert result.exit_code == 1
    assert probes.calls == []


@pytest.mark.parametrize("args", [
    ["-s", "203.0.113.5"],
    ["-h", "00:11:22:33:44:55"],
    BASE_ARGS + ["extra"],
])
def test_usage_errors_exit_one(runner, probes, args):
    assert runner.invoke(main, args).exit_code == 1
    assert probes.calls == []


def test_help(runner):
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "Exit status" in result.output


def test_env_defaults(runner, probes, monkeypatch):
    monkeypatch.setenv("DHCPPROBE_TRIES", "4")
    monkeypatch.setenv("DHCPPROBE_WAIT", "9")
    assert runner.invoke(main, BASE_ARGS).exit_code == 0
    assert (probes.calls[0].retries, probes.calls[0].maxwait) == (4, 9)


def test_command_line_overrides_env(runner, probes, monkeypatch):
    monkeypatch.setenv("DHCPPROBE_TRIES", "4")
    assert runner.invoke(main, BASE_ARGS + ["-t", "2"]).exit_code == 0
    assert probes.calls[0].retries == 2


def test_transport_error_exits_one(runner, probes):
    probes.outcome["raises"] = TransportError("server 203.0.113.5: Network is unreachable")
    result = runner.invoke(main, BASE_ARGS)
    assert result.exit_code == 1
    assert "server 203.0.113.5: Network is unreachable" in result.output


def test_unresolvable_local_sends_nothing(runner, monkeypatch):
    real_getaddrinfo = socket.getaddrinfo
    sent = []

    def fake_getaddrinfo(host, *args, **kwargs):
        if host == "bad.local":
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return real_getaddrinfo(host, *args, **kwargs)

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
    monkeypatch.setattr(socket.socket, "send", lambda self, data: sent.append(data))

    result = runner.invoke(main, BASE_ARGS + ["-l", "bad.local"])
    assert result.exit_code == 1
    assert "local address bad.local" in result.output
    assert sent == []
