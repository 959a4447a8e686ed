"""32-bit IEEE 754 floats stored across two consecutive holding registers."""

import struct

from .errors import InvalidArgumentError
from .session import Session
from .types import WordOrder


def _word_order(order: WordOrder | str) -> WordOrder:
    try:
        return WordOrder(order)
    except ValueError:
        raise InvalidArgumentError(f"invalid word order: {order!r}", value=order) from None


def registers_to_float32(registers: list[int], order: WordOrder | str = WordOrder.BIG) -> float:
    if len(registers) != 2:
        raise InvalidArgumentError(f"need exactly 2 registers, got {len(registers)}", value=registers)
    high, low = registers if _word_order(order) is WordOrder.BIG else reversed(registers)
    return struct.unpack(">f", struct.pack(">HH", high, low))[0]


def float32_to_registers(value: float, order: WordOrder | str = WordOrder.BIG) -> list[int]:
    high, low = struct.unpack(">HH", struct.pack(">f", value))
    return [high, low] if _word_order(order) is WordOrder.BIG else [low, high]


def read_float32(session: Session, unit: int, address: int, order: WordOrder | str = WordOrder.BIG) -> float:
    """Read two holding registers at address and combine them into a float."""
    _word_order(order)
    return registers_to_float32(session.read_holding_registers(unit, address, 2), order)


def write_float32(
    session: Session, unit: int, address: int, value: float, order: WordOrder | str = WordOrder.BIG
) -> None:
    session.write_multiple_registers(unit, address, float32_to_registers(value, order))
