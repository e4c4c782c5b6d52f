"""Networking helpers: MAC and port generation, address ranges and a file web server."""

from __future__ import annotations

import ipaddress
import logging
import os
import random
import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional, Union

logger = logging.getLogger(__name__)

MAX_IFACE_NUM = 100

_MIN_PORT = 1024
_MAX_PORT = 65535

NetworkLike = Union[str, ipaddress.IPv4Network, ipaddress.IPv6Network]


def random_mac_address() -> str:
    """Return a random locally administered unicast MAC with the 52:54:00 prefix."""
    first, second, third = os.urandom(3)
    # local bit set, multicast bit clear
    first = (first | 2) & 0xFE
    # avoid addresses reserved by the hypervisor
    if first == 0xFE:
        first = 0xEE
    return f"52:54:00:{first:02x}:{second:02x}:{third:02x}"


def random_port() -> int:
    """Return a random unprivileged port in [1024, 65535)."""
    return random.randrange(_MIN_PORT, _MAX_PORT)


def _as_network(network: NetworkLike) -> Union[ipaddress.IPv4Network, ipaddress.IPv6Network]:
    if isinstance(network, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return network
    return ipaddress.ip_network(network, strict=False)


def netmask_with_max_16_bits(network: NetworkLike):
    """Return the network's mask, narrowed so that at most 16 host bits remain."""
    net = _as_network(network)
    bits = net.max_prefixlen
    if bits - net.prefixlen > 16:
        return ipaddress.ip_network((0, bits - 16)).netmask if bits == 32 else (
            ipaddress.IPv6Network((0, bits - 16)).netmask
        )
    return net.netmask


def network_range(network: NetworkLike):
    """Return the first and last usable-range addresses of a network.

    The range is capped to 16 host bits, the most a virtual network supports.
    """
    net = _as_network(network)
    first = net.network_address
    all_ones = (1 << net.max_prefixlen) - 1
    host_mask = ~int(netmask_with_max_16_bits(net)) & all_ones
    last = ipaddress.ip_address(int(first) | host_mask)
    if net.version == 6:
        last = ipaddress.IPv6Address(int(first) | host_mask)
    return first, last


class _QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format, *args):  # noqa: A002 - signature fixed by base class
        logger.debug("%s - %s", self.address_string(), format % args)


@dataclass
class FileWebServer:
    """An HTTP server on 127.0.0.1 serving files from a fresh temporary directory."""

    dir: Optional[str] = None
    port: int = 0
    url: str = ""
    _server: Optional[ThreadingHTTPServer] = field(default=None, init=False, repr=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False, repr=False)

    def start(self) -> None:
        """Create the served directory and start serving it on a random port."""
        directory = tempfile.mkdtemp(dir=self.dir)
        self.dir = directory
        self.port = random_port()
        self.url = f"http://127.0.0.1:{self.port}"

        handler = partial(_QuietHandler, directory=directory)
        try:
            server = ThreadingHTTPServer(("127.0.0.1", self.port), handler)
        except OSError:
            shutil.rmtree(directory, ignore_errors=True)
            raise
        server.daemon_threads = True
        self._server = server
        self._thread = threading.Thread(target=server.serve_forever, daemon=True)
        self._thread.start()

    def add_content(self, content: bytes) -> tuple[str, str]:
        """Write ``content`` to a new file in the served directory; return its URL and path."""
        with tempfile.NamedTemporaryFile(
            prefix="file-", dir=self.dir, delete=False
        ) as handle:
            if content:
                handle.write(content)
            path = handle.name
        return f"{self.url}/{os.path.basename(path)}", path

    def add_file(self, file_path: str) -> str:
        """Symlink an existing file into the served directory and return its URL."""
        name = os.path.basename(file_path)
        os.symlink(file_path, os.path.join(self.dir, name))
        return f"{self.url}/{name}"

    def stop(self) -> None:
        """Stop serving and remove the served directory."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self.dir:
            shutil.rmtree(self.dir, ignore_errors=True)

    def __enter__(self) -> "FileWebServer":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()