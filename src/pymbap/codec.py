"""
Stateless PDU codec: encode requests, decode responses, pack coils and registers.

No I/O happens here. Every illegal argument raises InvalidArgumentError before a
request is built; every response that breaks a length or echo invariant raises
MalformedResponseError; exception responses raise ProtocolExceptionError.
"""

import struct
from typing import Sequence

from .errors import InvalidArgumentError, MalformedResponseError, ProtocolExceptionError
from .types import FunctionCode

COIL_ON = 0xFF00
COIL_OFF = 0x0000

_EXCEPTION_BIT = 0x80
_ADDRESS_SPACE = 0x10000

_READ_FUNCTIONS = (
    FunctionCode.READ_COILS,
    FunctionCode.READ_DISCRETE_INPUTS,
    FunctionCode.READ_HOLDING_REGISTERS,
    FunctionCode.READ_INPUT_REGISTERS,
)


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def validate_unit(unit: int) -> None:
    if isinstance(unit, bool) or not isinstance(unit, int) or not 0 <= unit <= 0xFF:
        raise InvalidArgumentError(f"invalid unit address: {unit!r} (must be 0-255)", value=unit)


def validate_quantity(function: FunctionCode, quantity: int) -> None:
    """Raise InvalidArgumentError if quantity is outside the function's legal range."""
    low, high = function.quantity_limits
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not low <= quantity <= high:
        raise InvalidArgumentError(
            f"invalid quantity: {quantity!r} (must be {low}-{high})",
            function=int(function),
            value=quantity,
        )


def validate_address(function: FunctionCode, address: int, quantity: int = 1) -> None:
    if isinstance(address, bool) or not isinstance(address, int) or not 0 <= address <= 0xFFFF:
        raise InvalidArgumentError(
            f"invalid address: {address!r} (must be 0-65535)", function=int(function), value=address
        )
    if address + quantity > _ADDRESS_SPACE:
        raise InvalidArgumentError(
            f"address range {address}+{quantity} runs past 65535",
            function=int(function),
            value=address,
        )


# ---------------------------------------------------------------------------
# Value packing
# ---------------------------------------------------------------------------


def pack_coils(values: Sequence[bool]) -> bytes:
    """Pack booleans LSB-first into ceil(N/8) bytes; trailing bits are zero."""
    packed = bytearray((len(values) + 7) // 8)
    for i, value in enumerate(values):
        if not isinstance(value, bool):
            raise InvalidArgumentError(f"coil value at index {i} is not a bool: {value!r}", value=value)
        if value:
            packed[i // 8] |= 1 << (i % 8)
    return bytes(packed)


def unpack_coils(data: bytes, count: int) -> list[bool]:
    """Unpack the first count bits of data (LSB-first); trailing bits are ignored."""
    needed = (count + 7) // 8
    if len(data) < needed:
        raise MalformedResponseError("short coil payload", expected=needed, actual=len(data))
    return [bool(data[i // 8] & (1 << (i % 8))) for i in range(count)]


def pack_registers(values: Sequence[int]) -> bytes:
    """Pack 16-bit values big-endian, in address order."""
    for i, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFF:
            raise InvalidArgumentError(
                f"register value at index {i} is not an int in 0-65535: {value!r}", value=value
            )
    return struct.pack(f">{len(values)}H", *values)


def unpack_registers(data: bytes) -> list[int]:
    if len(data) % 2:
        raise MalformedResponseError("odd register payload length", expected="even", actual=len(data))
    return list(struct.unpack(f">{len(data) // 2}H", data))


# ---------------------------------------------------------------------------
# Request encoding
# ---------------------------------------------------------------------------


def encode_read_request(function: FunctionCode, address: int, quantity: int) -> bytes:
    """Build a read PDU: function, start address, quantity."""
    if function not in _READ_FUNCTIONS:
        raise InvalidArgumentError(f"not a read function: {function!r}", value=function)
    validate_quantity(function, quantity)
    validate_address(function, address, quantity)
    return struct.pack(">BHH", function, address, quantity)


def encode_write_single_coil(address: int, value: bool) -> bytes:
    function = FunctionCode.WRITE_SINGLE_COIL
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"coil value is not a bool: {value!r}", function=int(function), value=value)
    validate_address(function, address)
    return struct.pack(">BHH", function, address, COIL_ON if value else COIL_OFF)


def encode_write_single_register(address: int, value: int) -> bytes:
    function = FunctionCode.WRITE_SINGLE_REGISTER
    validate_address(function, address)
    return struct.pack(">BH", function, address) + pack_registers([value])


def encode_write_multiple_coils(address: int, values: Sequence[bool]) -> bytes:
    function = FunctionCode.WRITE_MULTIPLE_COILS
    validate_quantity(function, len(values))
    validate_address(function, address, len(values))
    data = pack_coils(values)
    return struct.pack(">BHHB", function, address, len(values), len(data)) + data


def encode_write_multiple_registers(address: int, values: Sequence[int]) -> bytes:
    function = FunctionCode.WRITE_MULTIPLE_REGISTERS
    validate_quantity(function, len(values))
    validate_address(function, address, len(values))
    data = pack_registers(values)
    return struct.pack(">BHHB", function, address, len(values), len(data)) + data


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


def check_response(pdu: bytes, function: FunctionCode) -> None:
    """
    Raise ProtocolExceptionError for an exception response, MalformedResponseError
    if the response is empty or answers a different function.
    """
    if not pdu:
        raise MalformedResponseError("empty response PDU")
    code = pdu[0]
    if code & _EXCEPTION_BIT:
        if len(pdu) != 2:
            raise MalformedResponseError("exception response length", expected=2, actual=len(pdu))
        raise ProtocolExceptionError(code & ~_EXCEPTION_BIT, pdu[1])
    if code != function:
        raise MalformedResponseError("response function code", expected=int(function), actual=code)


def _read_payload(pdu: bytes, function: FunctionCode, expected_count: int) -> bytes:
    check_response(pdu, function)
    if len(pdu) < 2:
        raise MalformedResponseError("response too short for byte count", expected=2, actual=len(pdu))
    byte_count = pdu[1]
    if len(pdu) - 2 != byte_count:
        raise MalformedResponseError("byte count does not match payload length", expected=byte_count, actual=len(pdu) - 2)
    if byte_count != expected_count:
        raise MalformedResponseError("byte count for requested quantity", expected=expected_count, actual=byte_count)
    return pdu[2:]


def decode_read_bits(pdu: bytes, function: FunctionCode, quantity: int) -> list[bool]:
    """Decode a read-coils / read-discrete-inputs response into quantity booleans."""
    data = _read_payload(pdu, function, (quantity + 7) // 8)
    return unpack_coils(data, quantity)


def decode_read_registers(pdu: bytes, function: FunctionCode, quantity: int) -> list[int]:
    """Decode a read-holding / read-input registers response into quantity ints."""
    data = _read_payload(pdu, function, quantity * 2)
    return unpack_registers(data)


def verify_single_write_echo(request: bytes, response: bytes) -> None:
    """Single-coil and single-register writes answer with an exact echo of the request."""
    check_response(response, FunctionCode(request[0]))
    if response != request:
        raise MalformedResponseError("write echo differs from request", expected=request.hex(), actual=response.hex())


def verify_multiple_write_response(response: bytes, function: FunctionCode, address: int, quantity: int) -> None:
    """Multiple writes answer with function, start address and quantity."""
    check_response(response, function)
    if len(response) != 5:
        raise MalformedResponseError("write response length", expected=5, actual=len(response))
    _, echoed_address, echoed_quantity = struct.unpack(">BHH", response)
    if (echoed_address, echoed_quantity) != (address, quantity):
        raise MalformedResponseError(
            "write response address/quantity",
            expected=(address, quantity),
            actual=(echoed_address, echoed_quantity),
        )
