"""Pick a free local port by random probing."""

from __future__ import annotations

import errno
import random
import socket
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

from lib.telemetry.logger import get_logger
from lib.utils.validation import ensure

log = get_logger(__name__)

DEFAULT_PORT_FROM = 12127
DEFAULT_PORT_TO = 12712
DEFAULT_MAX_FAILURES = 10


class PortBindError(RuntimeError):
    """Every probed port was in use."""

    def __init__(self, port_from: int, port_to: int, attempts: int, last_error: Optional[OSError] = None) -> None:
        super().__init__(
            f"Failed too often while trying to open a port in {port_from}-{port_to} "
            f"({attempts} attempts, all in use)"
        )
        self.port_from = port_from
        self.port_to = port_to
        self.attempts = attempts
        self.last_error = last_error


def _tcp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_STREAM)


@dataclass
class PortBinder:
    """Bind a listening socket to a random port of ``[port_from, port_to]``.

    Candidates are drawn at random, not scanned, so callers must not expect
    the lowest free port.  ``max_failures`` bounds the number of "address in
    use" failures tolerated before giving up; any other bind error is raised
    straight away.
    """

    port_from: int = DEFAULT_PORT_FROM
    port_to: int = DEFAULT_PORT_TO
    max_failures: int = DEFAULT_MAX_FAILURES
    host: str = "0.0.0.0"
    backlog: int = 128
    socket_factory: Callable[[], socket.socket] = field(default=_tcp_socket, repr=False)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        ensure(1 <= self.port_from <= 65535, f"Invalid port {self.port_from}")
        ensure(1 <= self.port_to <= 65535, f"Invalid port {self.port_to}")
        ensure(self.port_from <= self.port_to, "Port range is empty")
        ensure(self.max_failures >= 0, "max_failures must not be negative")

    def bind(self) -> Tuple[int, socket.socket]:
        """Return ``(port, sock)`` with ``sock`` already listening."""

        failures = 0
        while True:
            port = self.rng.randint(self.port_from, self.port_to)
            sock = self.socket_factory()
            try:
                sock.bind((self.host, port))
                sock.listen(self.backlog)
            except OSError as ex:
                sock.close()
                if ex.errno != errno.EADDRINUSE:
                    raise
                failures += 1
                log.debug("Port %d in use (%d failures)", port, failures)
                if failures > self.max_failures:
                    log.error("Failed too often while trying to open port")
                    raise PortBindError(self.port_from, self.port_to, failures, ex) from ex
                continue
            sock.setblocking(False)
            return port, sock


__all__ = ["PortBinder", "PortBindError"]
