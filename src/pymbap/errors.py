"""Exceptions for pymbap: argument checks, transport failures, bad responses, device exceptions."""

from .types import ExceptionCode


class ModbusClientError(Exception):
    """Base exception for pymbap."""

    pass


class InvalidArgumentError(ModbusClientError, ValueError):
    """Raised before any I/O when a quantity, address or value is illegal for the function."""

    def __init__(self, message: str, *, function: int | None = None, value: object = None) -> None:
        self.function = function
        self.value = value
        super().__init__(message)


class TransportError(ModbusClientError):
    """Raised on connection failure, deadline expiry or a short read/write."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class CorrelationMismatchError(ModbusClientError):
    """Raised when a response carries another transaction id; the session is desynchronized."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"transaction ID mismatch: expected {expected}, got {actual}")


class MalformedResponseError(ModbusClientError):
    """Raised when a response violates a length or echo invariant."""

    def __init__(self, message: str, *, expected: object = None, actual: object = None) -> None:
        self.expected = expected
        self.actual = actual
        if expected is not None or actual is not None:
            message = f"{message} (expected {expected!r}, got {actual!r})"
        super().__init__(message)


class ProtocolExceptionError(ModbusClientError):
    """Raised when the remote device answers with an exception response."""

    def __init__(self, function_code: int, exception_code: int) -> None:
        self.function_code = function_code
        self.exception_code = exception_code
        super().__init__(
            f"Modbus exception: function=0x{function_code:02X}, exception=0x{exception_code:02X}"
        )

    @property
    def description(self) -> str:
        return ExceptionCode.describe(self.exception_code)


class PoolTimeoutError(ModbusClientError):
    """Raised when no pooled session became available before the acquire timeout."""

    pass


class PoolClosedError(ModbusClientError):
    """Raised when acquiring from a pool that has been shut down."""

    pass
