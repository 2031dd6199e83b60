"""
Command line entry point for dhcpprobe.

Exit status is the whole interface: 0 when the server answered, 1 on a
usage, socket or I/O error, 2 when no reply arrived in time.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import sys

import click
from rich.console import Console
from rich.markup import escape

from dhcpprobe.config import (
    INTERVAL_MAX,
    INTERVAL_MIN,
    INTERVAL_DEFAULT,
    MAXWAIT_DEFAULT,
    MAXWAIT_MAX,
    MAXWAIT_MIN,
    TRIES_DEFAULT,
    TRIES_MAX,
    TRIES_MIN,
    ConfigError,
    ProbeConfig,
    defaults_from_env,
)
from dhcpprobe.logging_config import configure_logging
from dhcpprobe.packet import PacketError
from dhcpprobe.probe import EXIT_FAILURE, ProbeResult, probe
from dhcpprobe.transport import TransportError

console = Console(stderr=True)


def error(message: str):
    """Print a fatal error and exit 1."""
    console.print(f"[red]dhcpprobe: {escape(message)}[/red]", highlight=False, soft_wrap=True)
    sys.exit(EXIT_FAILURE)


class ProbeCommand(click.Command):
    """Click command whose usage errors exit 1; status 2 means "no reply"."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            e.exit_code = EXIT_FAILURE
            raise


@click.command(cls=ProbeCommand, context_settings={"help_option_names": ["--help"]})
@click.option("--mac", "-h", required=True, help="Client hardware address (xx:xx:xx:xx:xx:xx)")
@click.option("--server", "-s", required=True, help="DHCP server address or hostname")
@click.option("--local", "-l", help="Local address to bind (default: any)")
@click.option("--interval", "-i", type=click.IntRange(INTERVAL_MIN, INTERVAL_MAX),
              help=f"Seconds between tries [default: {INTERVAL_DEFAULT}]")
@click.option("--tries", "-t", type=click.IntRange(TRIES_MIN, TRIES_MAX),
              help=f"Number of packets to send [default: {TRIES_DEFAULT}]")
@click.option("--wait", "-w", "maxwait", type=click.IntRange(MAXWAIT_MIN, MAXWAIT_MAX),
              help=f"Maximum seconds to wait for a reply [default: {MAXWAIT_DEFAULT}]")
@click.option("--user", "-u", help="Drop root privileges to this user after binding")
@click.option("--verbose", "-v", is_flag=True, help="Report timeouts on stderr")
@click.option("--debug", is_flag=True, help="Debug logging on stderr")
def main(
    mac: str,
    server: str,
    local: str | None,
    interval: int | None,
    tries: int | None,
    maxwait: int | None,
    user: str | None,
    verbose: bool,
    debug: bool,
):
    """Check that a DHCP server answers a relayed DHCPDISCOVER.

    Sends a DHCPDISCOVER to SERVER as if forwarded by a relay agent and
    succeeds on the first reply of any kind, NAKs included.

    \b
    Exit status:
        0  a reply was received
        1  usage, address or socket error
        2  no reply within the maximum wait

    \b
    Examples:
        dhcpprobe -h 00:11:22:33:44:55 -s 203.0.113.5
        dhcpprobe -v -h 00:11:22:33:44:55 -s dhcp.example.net -l 192.0.2.1 -t 2 -w 5

    Binding the bootps port normally requires root.
    """
    configure_logging(debug=debug)

    try:
        env = defaults_from_env()
        config = ProbeConfig(
            mac=mac,
            server=server,
            local=local or env.get("local"),
            interval=interval or env.get("interval", INTERVAL_DEFAULT),
            retries=tries or env.get("retries", TRIES_DEFAULT),
            maxwait=maxwait or env.get("maxwait", MAXWAIT_DEFAULT),
            user=user or env.get("user"),
            verbose=verbose,
        ).validate()
    except ConfigError as e:
        error(str(e))

    try:
        session = probe(config)
    except (ConfigError, TransportError, PacketError) as e:
        error(str(e))

    if session.result is ProbeResult.FATAL:
        error(f"{session.error_context}: {session.error.strerror or session.error}")

    sys.exit(session.result.exit_code)


if __name__ == "__main__":
    main()
