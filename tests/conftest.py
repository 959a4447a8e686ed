"""Shared fixtures: an in-process fake Modbus device transport and a loopback TCP server."""

import socket
import struct
import threading
from collections import defaultdict
from typing import Callable, Iterator, Optional

import pytest

Handler = Callable[[int, bytes], Optional[bytes]]


def _pack_bits(bits: list[bool]) -> bytes:
    out = bytearray((len(bits) + 7) // 8)
    for i, bit in enumerate(bits):
        if bit:
            out[i // 8] |= 1 << (i % 8)
    return bytes(out)


class DeviceMemory:
    """Coil and register tables plus a request handler answering like a Modbus server."""

    def __init__(self) -> None:
        self.coils: dict[int, bool] = defaultdict(bool)
        self.discrete_inputs: dict[int, bool] = defaultdict(bool)
        self.holding: dict[int, int] = defaultdict(int)
        self.input_registers: dict[int, int] = defaultdict(int)
        self.lock = threading.Lock()

    def respond(self, unit: int, pdu: bytes) -> Optional[bytes]:
        fc = pdu[0]
        with self.lock:
            if fc in (1, 2):
                address, quantity = struct.unpack(">HH", pdu[1:5])
                table = self.coils if fc == 1 else self.discrete_inputs
                data = _pack_bits([table[address + i] for i in range(quantity)])
                return bytes([fc, len(data)]) + data
            if fc in (3, 4):
                address, quantity = struct.unpack(">HH", pdu[1:5])
                table = self.holding if fc == 3 else self.input_registers
                data = b"".join(struct.pack(">H", table[address + i]) for i in range(quantity))
                return bytes([fc, len(data)]) + data
            if fc == 5:
                address, value = struct.unpack(">HH", pdu[1:5])
                self.coils[address] = value == 0xFF00
                return pdu
            if fc == 6:
                address, value = struct.unpack(">HH", pdu[1:5])
                self.holding[address] = value
                return pdu
            if fc == 15:
                address, quantity, _count = struct.unpack(">HHB", pdu[1:6])
                for i in range(quantity):
                    self.coils[address + i] = bool(pdu[6 + i // 8] & (1 << (i % 8)))
                return pdu[:5]
            if fc == 16:
                address, quantity, _count = struct.unpack(">HHB", pdu[1:6])
                for i in range(quantity):
                    self.holding[address + i] = struct.unpack(">H", pdu[6 + 2 * i : 8 + 2 * i])[0]
                return pdu[:5]
        return bytes([fc | 0x80, 0x01])


class FakeDevice:
    """
    Socket-like transport that answers each sendall() in-process.

    handler(unit, pdu) returns the response PDU, or None to simulate the peer
    closing the connection. tid_shift offsets the echoed transaction id and
    chunk_size limits how many bytes each recv() returns.
    """

    def __init__(self, memory: DeviceMemory | None = None) -> None:
        self.memory = memory or DeviceMemory()
        self.handler: Handler = self.memory.respond
        self.sent: list[bytes] = []
        self.timeouts: list[Optional[float]] = []
        self.tid_shift = 0
        self.protocol_id = 0
        self.chunk_size: int | None = None
        self.recv_error: OSError | None = None
        self.closed = False
        self._rx = bytearray()

    def settimeout(self, value: Optional[float]) -> None:
        self.timeouts.append(value)

    def sendall(self, data: bytes) -> None:
        self.sent.append(bytes(data))
        tid, _pid, _length, unit = struct.unpack(">HHHB", data[:7])
        response = self.handler(unit, bytes(data[7:]))
        if response is None:
            return
        out_tid = (tid + self.tid_shift) & 0xFFFF
        self._rx += struct.pack(">HHHB", out_tid, self.protocol_id, len(response) + 1, unit) + response

    def recv(self, bufsize: int) -> bytes:
        if self.recv_error is not None:
            raise self.recv_error
        n = bufsize if self.chunk_size is None else min(bufsize, self.chunk_size)
        chunk = bytes(self._rx[:n])
        del self._rx[:n]
        return chunk

    def close(self) -> None:
        self.closed = True


def _recv_exact(conn: socket.socket, size: int) -> bytes:
    buf = b""
    while len(buf) < size:
        chunk = conn.recv(size - len(buf))
        if not chunk:
            raise ConnectionError("client went away")
        buf += chunk
    return buf


class LoopbackServer:
    """Threaded Modbus TCP server on 127.0.0.1 backed by a DeviceMemory."""

    def __init__(self) -> None:
        self.memory = DeviceMemory()
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(64)
        self.port = self._sock.getsockname()[1]
        self.connections = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    def _accept_loop(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except OSError:
                return
            self.connections += 1
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn: socket.socket) -> None:
        with conn:
            try:
                while True:
                    header = _recv_exact(conn, 7)
                    tid, _pid, length, unit = struct.unpack(">HHHB", header)
                    pdu = _recv_exact(conn, length - 1)
                    response = self.memory.respond(unit, pdu)
                    if response is None:
                        return
                    conn.sendall(struct.pack(">HHHB", tid, 0, len(response) + 1, unit) + response)
            except (ConnectionError, OSError):
                return

    def stop(self) -> None:
        self._stop.set()
        self._sock.close()


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def server() -> Iterator[LoopbackServer]:
    srv = LoopbackServer()
    yield srv
    srv.stop()


@pytest.fixture
def free_port() -> int:
    """A port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
