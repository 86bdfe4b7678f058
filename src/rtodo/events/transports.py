# src/rtodo/events/transports.py

"""
Event transports.

Two interchangeable carriers, picked once at startup by create_transport():

- LocalBroadcastTransport: a named channel inside one process. Every transport
  attached to the same channel name receives every message, the sender included.
  Used for single-context runs and tests.
- UnixSocketTransport: one Unix datagram socket per attached process, all living
  in a shared directory. send() writes the datagram to every socket file found
  there, so the main window and the compact window (separate processes) see
  each other's events.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import socket
import threading
import uuid
from collections.abc import Callable
from pathlib import Path

from ..core.ports import EventTransport

logger = logging.getLogger(__name__)

Receiver = Callable[[bytes], None]

MAX_DATAGRAM = 64 * 1024


class LocalBroadcastTransport:
    _channels: dict[str, list[LocalBroadcastTransport]] = {}
    _lock = threading.Lock()

    def __init__(self, channel: str = "rtodo-events") -> None:
        self.channel = channel
        self._receiver: Receiver | None = None

    def attach(self, receiver: Receiver) -> None:
        self._receiver = receiver
        with self._lock:
            members = self._channels.setdefault(self.channel, [])
            if self not in members:
                members.append(self)

    def detach(self) -> None:
        with self._lock:
            members = self._channels.get(self.channel, [])
            if self in members:
                members.remove(self)
            if not members:
                self._channels.pop(self.channel, None)
        self._receiver = None

    def send(self, message: bytes) -> None:
        with self._lock:
            members = list(self._channels.get(self.channel, []))
        for member in members:
            receiver = member._receiver
            if receiver is None:
                continue
            try:
                receiver(message)
            except Exception:
                logger.exception("Local receiver failed channel=%s", self.channel)


class UnixSocketTransport:
    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._sock: socket.socket | None = None
        self._path: Path | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._receiver: Receiver | None = None
        self._out: socket.socket | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def attach(self, receiver: Receiver) -> None:
        """Bind this process's socket and start reading it on the running loop."""
        if self._sock is not None:
            self._receiver = receiver
            return

        loop = asyncio.get_running_loop()
        path = self.directory / f"{os.getpid()}-{uuid.uuid4().hex[:8]}.sock"
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
        sock.setblocking(False)
        sock.bind(str(path))

        self._sock = sock
        self._path = path
        self._loop = loop
        self._receiver = receiver
        loop.add_reader(sock.fileno(), self._on_readable)
        logger.info("Event socket listening path=%s", path)

    def _on_readable(self) -> None:
        sock = self._sock
        if sock is None:
            return
        while True:
            try:
                data = sock.recv(MAX_DATAGRAM)
            except (BlockingIOError, InterruptedError):
                return
            except OSError:
                logger.exception("Event socket recv failed path=%s", self._path)
                return
            receiver = self._receiver
            if receiver is None:
                continue
            try:
                receiver(data)
            except Exception:
                logger.exception("Socket receiver failed path=%s", self._path)

    def detach(self) -> None:
        if self._sock is not None:
            if self._loop is not None and not self._loop.is_closed():
                with contextlib.suppress(Exception):
                    self._loop.remove_reader(self._sock.fileno())
            self._sock.close()
            self._sock = None
        if self._path is not None:
            with contextlib.suppress(FileNotFoundError):
                self._path.unlink()
            self._path = None
        if self._out is not None:
            self._out.close()
            self._out = None
        self._receiver = None
        self._loop = None

    def _out_sock(self) -> socket.socket:
        if self._out is None:
            self._out = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
            self._out.setblocking(False)
        return self._out

    def send(self, message: bytes) -> None:
        out = self._out_sock()
        for peer in sorted(self.directory.glob("*.sock")):
            try:
                out.sendto(message, str(peer))
            except (ConnectionRefusedError, FileNotFoundError):
                # Owner process is gone; the file is stale.
                with contextlib.suppress(OSError):
                    peer.unlink()
                logger.debug("Pruned stale event socket %s", peer)
            except BlockingIOError:
                logger.warning("Event dropped, peer buffer full peer=%s", peer)
            except OSError as e:
                logger.warning("Event send failed peer=%s err=%s", peer, e)


def create_transport(settings) -> EventTransport:
    """Pick the transport once, from settings.event_transport ('local' or 'socket')."""
    kind = str(getattr(settings, "event_transport", "local")).strip().lower()

    if kind == "socket":
        if not hasattr(socket, "AF_UNIX"):
            logger.warning("Unix sockets unavailable on this platform; using local channel.")
        else:
            return UnixSocketTransport(settings.event_socket_dir)
    elif kind != "local":
        raise ValueError(f"unknown event transport: {kind!r}")

    return LocalBroadcastTransport(str(getattr(settings, "event_channel", "rtodo-events")))
