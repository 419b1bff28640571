"""Local network helpers."""
import logging
import socket
import subprocess
from typing import Set

logger = logging.getLogger("net")


def get_local_host_addresses() -> Set[str]:
    """Return every IPv4/IPv6 address assigned to the execution host."""
    addresses = {'127.0.0.1', '::1'}
    try:
        result = subprocess.run(
            ['hostname', '-I'],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=5
        )
        if result.returncode == 0:
            addresses.update(result.stdout.split())
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"hostname -I failed: {e}")

    try:
        for info in socket.getaddrinfo(socket.gethostname(), None):
            addresses.add(info[4][0])
    except socket.gaierror as e:
        logger.debug(f"Failed to resolve local hostname: {e}")
    return addresses
