"""Session: one TCP connection, one in-flight exchange, MBAP framing with transaction ids."""

import logging
import socket
import struct
import threading
import time
from typing import Any, Protocol, Sequence

from . import codec
from .errors import (
    CorrelationMismatchError,
    InvalidArgumentError,
    MalformedResponseError,
    TransportError,
)
from .types import DEFAULT_TIMEOUT, ClientConfig, FunctionCode

logger = logging.getLogger(__name__)

# transaction id, protocol id, length, unit id
_HEADER = struct.Struct(">HHHB")
HEADER_SIZE = _HEADER.size  # 7
_PROTOCOL_ID = 0


class Transport(Protocol):
    """The subset of the socket API a Session needs."""

    def settimeout(self, value: float | None) -> None: ...

    def sendall(self, data: bytes) -> None: ...

    def recv(self, bufsize: int) -> bytes: ...

    def close(self) -> None: ...


def build_frame(transaction_id: int, unit: int, pdu: bytes) -> bytes:
    """Prefix pdu with the 7-byte MBAP header."""
    return _HEADER.pack(transaction_id, _PROTOCOL_ID, len(pdu) + 1, unit) + pdu


class Session:
    """
    A Modbus TCP client session over one stream connection.

    Exchanges are serialized by a lock; transaction ids start at 1 and wrap from
    65535 to 0. After a TransportError or CorrelationMismatchError the stream is
    out of step and the session should be closed and replaced, not reused.
    """

    def __init__(self, transport: Transport, timeout: float = DEFAULT_TIMEOUT, name: str = "") -> None:
        self._transport = transport
        self._timeout = timeout if timeout > 0 else DEFAULT_TIMEOUT
        self._name = name or repr(transport)
        self._transaction_id = 0
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, config: ClientConfig) -> "Session":
        """Connect to config.address; raises TransportError if the connection fails."""
        try:
            sock = socket.create_connection((config.host, config.port), timeout=config.timeout)
        except OSError as e:
            raise TransportError(f"failed to connect to {config.address}: {e}", cause=e) from e
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            sock.close()
            raise TransportError(f"failed to configure socket to {config.address}: {e}", cause=e) from e
        logger.info("Session connected to %s", config.address)
        return cls(sock, timeout=config.timeout, name=config.address)

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the connection. Idempotent; a closed session cannot be reopened."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._transport.close()
            except OSError as e:
                logger.warning("Error closing session %s: %s", self._name, e)
        logger.info("Session %s closed", self._name)

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Session {self._name} {state}>"

    # -----------------------------------------------------------------------
    # Framing
    # -----------------------------------------------------------------------

    def _recv_exactly(self, size: int, deadline: float, what: str) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransportError(f"timed out reading {what}: got {len(buf)} of {size} bytes")
            try:
                self._transport.settimeout(remaining)
                chunk = self._transport.recv(size - len(buf))
            except OSError as e:
                raise TransportError(f"failed to read {what}: {e}", cause=e) from e
            if not chunk:
                raise TransportError(f"connection closed reading {what}: got {len(buf)} of {size} bytes")
            buf += chunk
        return bytes(buf)

    def exchange(self, unit: int, pdu: bytes) -> bytes:
        """
        Send one request PDU to unit and return the response PDU.

        The response is returned undecoded, exception responses included.
        """
        codec.validate_unit(unit)
        if not pdu:
            raise InvalidArgumentError("request PDU cannot be empty")
        with self._lock:
            if self._closed:
                raise TransportError(f"session {self._name} is closed")
            self._transaction_id = (self._transaction_id + 1) & 0xFFFF
            tid = self._transaction_id
            frame = build_frame(tid, unit, pdu)
            logger.debug("tx id=%d unit=%d fc=0x%02X len=%d", tid, unit, pdu[0], len(pdu))

            try:
                self._transport.settimeout(self._timeout)
                self._transport.sendall(frame)
            except OSError as e:
                raise TransportError(f"failed to send request: {e}", cause=e) from e

            deadline = time.monotonic() + self._timeout
            header = self._recv_exactly(HEADER_SIZE, deadline, "response header")
            resp_tid, protocol_id, length, resp_unit = _HEADER.unpack(header)
            if resp_tid != tid:
                raise CorrelationMismatchError(tid, resp_tid)
            if protocol_id != _PROTOCOL_ID:
                raise MalformedResponseError("protocol id", expected=_PROTOCOL_ID, actual=protocol_id)
            if length < 2:
                raise MalformedResponseError("MBAP length field too small", expected=">= 2", actual=length)
            response = self._recv_exactly(length - 1, deadline, "response data")
            logger.debug("rx id=%d unit=%d fc=0x%02X len=%d", resp_tid, resp_unit, response[0], len(response))
            return response

    # -----------------------------------------------------------------------
    # Typed operations
    # -----------------------------------------------------------------------

    def _read_bits(self, function: FunctionCode, unit: int, address: int, quantity: int) -> list[bool]:
        request = codec.encode_read_request(function, address, quantity)
        return codec.decode_read_bits(self.exchange(unit, request), function, quantity)

    def _read_registers(self, function: FunctionCode, unit: int, address: int, quantity: int) -> list[int]:
        request = codec.encode_read_request(function, address, quantity)
        return codec.decode_read_registers(self.exchange(unit, request), function, quantity)

    def read_coils(self, unit: int, address: int, quantity: int) -> list[bool]:
        """Read 1-2000 coils (0x01)."""
        return self._read_bits(FunctionCode.READ_COILS, unit, address, quantity)

    def read_discrete_inputs(self, unit: int, address: int, quantity: int) -> list[bool]:
        """Read 1-2000 discrete inputs (0x02)."""
        return self._read_bits(FunctionCode.READ_DISCRETE_INPUTS, unit, address, quantity)

    def read_holding_registers(self, unit: int, address: int, quantity: int) -> list[int]:
        """Read 1-125 holding registers (0x03)."""
        return self._read_registers(FunctionCode.READ_HOLDING_REGISTERS, unit, address, quantity)

    def read_input_registers(self, unit: int, address: int, quantity: int) -> list[int]:
        """Read 1-125 input registers (0x04)."""
        return self._read_registers(FunctionCode.READ_INPUT_REGISTERS, unit, address, quantity)

    def write_single_coil(self, unit: int, address: int, value: bool) -> None:
        request = codec.encode_write_single_coil(address, value)
        codec.verify_single_write_echo(request, self.exchange(unit, request))

    def write_single_register(self, unit: int, address: int, value: int) -> None:
        request = codec.encode_write_single_register(address, value)
        codec.verify_single_write_echo(request, self.exchange(unit, request))

    def write_multiple_coils(self, unit: int, address: int, values: Sequence[bool]) -> None:
        """Write 1-1968 coils (0x0F)."""
        request = codec.encode_write_multiple_coils(address, values)
        response = self.exchange(unit, request)
        codec.verify_multiple_write_response(response, FunctionCode.WRITE_MULTIPLE_COILS, address, len(values))

    def write_multiple_registers(self, unit: int, address: int, values: Sequence[int]) -> None:
        """Write 1-123 registers (0x10)."""
        request = codec.encode_write_multiple_registers(address, values)
        response = self.exchange(unit, request)
        codec.verify_multiple_write_response(response, FunctionCode.WRITE_MULTIPLE_REGISTERS, address, len(values))


def open_session(config: ClientConfig) -> Session:
    """Open a Session to config.address."""
    return Session.open(config)

