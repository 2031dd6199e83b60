"""
Dropping root once the bootps socket is bound.
"""

import logging
import os
import pwd

from dhcpprobe.config import ConfigError

logger = logging.getLogger(__name__)


def drop_privileges(user: str | None) -> bool:
    """
    Switch to an unprivileged user if running as root.

    Args:
        user: Account name to switch to; None leaves privileges alone

    Returns:
        True if the process changed identity
    """
    if user is None:
        return False

    if os.geteuid() != 0:
        logger.debug(f"Not running as root, keeping current user instead of {user}")
        return False

    try:
        pw = pwd.getpwnam(user)
    except KeyError:
        raise ConfigError(f"no such user {user}") from None

    try:
        os.setgroups([pw.pw_gid])
        os.setgid(pw.pw_gid)
        os.setuid(pw.pw_uid)
    except OSError as e:
        raise ConfigError(f"cannot switch to user {user}: {e.strerror or e}") from e

    logger.debug(f"Dropped privileges to {user} ({pw.pw_uid}:{pw.pw_gid})")
    return True
