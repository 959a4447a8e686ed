"""Batch execution: run a sequence of typed operations over one session, one outcome per item."""

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Sequence, Union

from .errors import InvalidArgumentError, ModbusClientError
from .session import Session
from .types import FunctionCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadCoils:
    unit: int
    address: int
    quantity: int
    function: ClassVar[FunctionCode] = FunctionCode.READ_COILS


@dataclass(frozen=True)
class ReadDiscreteInputs:
    unit: int
    address: int
    quantity: int
    function: ClassVar[FunctionCode] = FunctionCode.READ_DISCRETE_INPUTS


@dataclass(frozen=True)
class ReadHoldingRegisters:
    unit: int
    address: int
    quantity: int
    function: ClassVar[FunctionCode] = FunctionCode.READ_HOLDING_REGISTERS


@dataclass(frozen=True)
class ReadInputRegisters:
    unit: int
    address: int
    quantity: int
    function: ClassVar[FunctionCode] = FunctionCode.READ_INPUT_REGISTERS


@dataclass(frozen=True)
class WriteSingleCoil:
    unit: int
    address: int
    value: bool
    function: ClassVar[FunctionCode] = FunctionCode.WRITE_SINGLE_COIL


@dataclass(frozen=True)
class WriteSingleRegister:
    unit: int
    address: int
    value: int
    function: ClassVar[FunctionCode] = FunctionCode.WRITE_SINGLE_REGISTER


@dataclass(frozen=True)
class WriteMultipleCoils:
    unit: int
    address: int
    values: tuple[bool, ...]
    function: ClassVar[FunctionCode] = FunctionCode.WRITE_MULTIPLE_COILS


@dataclass(frozen=True)
class WriteMultipleRegisters:
    unit: int
    address: int
    values: tuple[int, ...]
    function: ClassVar[FunctionCode] = FunctionCode.WRITE_MULTIPLE_REGISTERS


BatchItem = Union[
    ReadCoils,
    ReadDiscreteInputs,
    ReadHoldingRegisters,
    ReadInputRegisters,
    WriteSingleCoil,
    WriteSingleRegister,
    WriteMultipleCoils,
    WriteMultipleRegisters,
]


@dataclass(frozen=True)
class BatchOutcome:
    """Result of one batch item: values for reads (None for writes), or the error raised."""

    item: Any
    function: FunctionCode | None
    values: list[bool] | list[int] | None = None
    error: ModbusClientError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _dispatch(session: Session, item: BatchItem) -> list[bool] | list[int] | None:
    if isinstance(item, ReadCoils):
        return session.read_coils(item.unit, item.address, item.quantity)
    if isinstance(item, ReadDiscreteInputs):
        return session.read_discrete_inputs(item.unit, item.address, item.quantity)
    if isinstance(item, ReadHoldingRegisters):
        return session.read_holding_registers(item.unit, item.address, item.quantity)
    if isinstance(item, ReadInputRegisters):
        return session.read_input_registers(item.unit, item.address, item.quantity)
    if isinstance(item, WriteSingleCoil):
        session.write_single_coil(item.unit, item.address, item.value)
        return None
    if isinstance(item, WriteSingleRegister):
        session.write_single_register(item.unit, item.address, item.value)
        return None
    if isinstance(item, WriteMultipleCoils):
        session.write_multiple_coils(item.unit, item.address, item.values)
        return None
    if isinstance(item, WriteMultipleRegisters):
        session.write_multiple_registers(item.unit, item.address, item.values)
        return None
    raise InvalidArgumentError(f"unknown batch operation: {item!r}", value=item)


def _run_one(session: Session, index: int, item: Any) -> BatchOutcome:
    function = getattr(item, "function", None)
    try:
        values = _dispatch(session, item)
    except ModbusClientError as e:
        logger.debug("Batch item %d (%r) failed: %s", index, item, e)
        return BatchOutcome(item=item, function=function, error=e)
    return BatchOutcome(item=item, function=function, values=values)


def run_batch(session: Session, items: Sequence[BatchItem]) -> list[BatchOutcome]:
    """
    Run items in order over session. A failing item records its error in its own
    outcome and the batch continues; outcomes match items 1:1.
    """
    return [_run_one(session, index, item) for index, item in enumerate(items)]


# ---------------------------------------------------------------------------
# String-tagged form (JSON files, CLI)
# ---------------------------------------------------------------------------

_READ_OPS: dict[str, type] = {
    "read_coils": ReadCoils,
    "read_discrete_inputs": ReadDiscreteInputs,
    "read_holding": ReadHoldingRegisters,
    "read_input": ReadInputRegisters,
}

_WRITE_OPS: dict[str, type] = {
    "write_coil": WriteSingleCoil,
    "write_register": WriteSingleRegister,
    "write_coils": WriteMultipleCoils,
    "write_registers": WriteMultipleRegisters,
}


def item_from_dict(raw: dict[str, Any]) -> BatchItem:
    """
    Build a typed batch item from {"op": ..., "unit": ..., "address": ..., "quantity" | "value" | "values": ...}.
    Unit defaults to 1. Raises InvalidArgumentError for unknown ops or missing fields.
    """
    if not isinstance(raw, dict):
        raise InvalidArgumentError(f"batch item must be an object: {raw!r}", value=raw)
    op = raw.get("op")
    if not isinstance(op, str):
        raise InvalidArgumentError(f"operation tag must be a string: {op!r}", value=raw)
    if op not in _READ_OPS and op not in _WRITE_OPS:
        raise InvalidArgumentError(f"unknown operation: {op!r}", value=raw)
    try:
        unit = raw.get("unit", 1)
        address = raw["address"]
        if op in _READ_OPS:
            return _READ_OPS[op](unit, address, raw["quantity"])
        if op in ("write_coil", "write_register"):
            return _WRITE_OPS[op](unit, address, raw["value"])
        values = raw["values"]
    except KeyError as e:
        raise InvalidArgumentError(f"batch item {op!r} missing field {e.args[0]!r}", value=raw) from None
    if not isinstance(values, (list, tuple)):
        raise InvalidArgumentError(f"values for {op} must be a list: {values!r}", value=values)
    return _WRITE_OPS[op](unit, address, tuple(values))


def run_batch_dicts(session: Session, raw_items: Sequence[dict[str, Any]]) -> list[BatchOutcome]:
    """Like run_batch, but items that fail item_from_dict get an Invalid-Argument outcome."""
    outcomes: list[BatchOutcome] = []
    for index, raw in enumerate(raw_items):
        try:
            item = item_from_dict(raw)
        except InvalidArgumentError as e:
            logger.debug("Batch item %d rejected: %s", index, e)
            outcomes.append(BatchOutcome(item=raw, function=None, error=e))
            continue
        except TypeError as e:
            logger.debug("Batch item %d rejected: %s", index, e)
            error = InvalidArgumentError(f"malformed batch item: {e}", value=raw)
            outcomes.append(BatchOutcome(item=raw, function=None, error=error))
            continue
        outcomes.append(_run_one(session, index, item))
    return outcomes
