"""pymbap: Modbus TCP client with MBAP framing, a bounded session pool and batch execution."""

__version__ = "0.1.0"

from .batch import (
    BatchItem,
    BatchOutcome,
    ReadCoils,
    ReadDiscreteInputs,
    ReadHoldingRegisters,
    ReadInputRegisters,
    WriteMultipleCoils,
    WriteMultipleRegisters,
    WriteSingleCoil,
    WriteSingleRegister,
    item_from_dict,
    run_batch,
)
from .errors import (
    CorrelationMismatchError,
    InvalidArgumentError,
    MalformedResponseError,
    ModbusClientError,
    PoolClosedError,
    PoolTimeoutError,
    ProtocolExceptionError,
    TransportError,
)
from .floats import read_float32, write_float32
from .pool import ConnectionPool
from .session import Session, open_session
from .types import ClientConfig, ExceptionCode, FunctionCode, PoolConfig, WordOrder

__all__ = [
    "__version__",
    "BatchItem",
    "BatchOutcome",
    "ReadCoils",
    "ReadDiscreteInputs",
    "ReadHoldingRegisters",
    "ReadInputRegisters",
    "WriteMultipleCoils",
    "WriteMultipleRegisters",
    "WriteSingleCoil",
    "WriteSingleRegister",
    "item_from_dict",
    "run_batch",
    "CorrelationMismatchError",
    "InvalidArgumentError",
    "MalformedResponseError",
    "ModbusClientError",
    "PoolClosedError",
    "PoolTimeoutError",
    "ProtocolExceptionError",
    "TransportError",
    "read_float32",
    "write_float32",
    "ConnectionPool",
    "Session",
    "open_session",
    "ClientConfig",
    "ExceptionCode",
    "FunctionCode",
    "PoolConfig",
    "WordOrder",
]
