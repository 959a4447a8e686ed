"""Core data model: function and exception code enums, word order, client and pool config."""

from dataclasses import dataclass
from enum import Enum, IntEnum

DEFAULT_PORT = 502
DEFAULT_TIMEOUT = 5.0
DEFAULT_POOL_CAPACITY = 10


class FunctionCode(IntEnum):
    """Modbus function identifiers supported by the client."""

    READ_COILS = 0x01
    READ_DISCRETE_INPUTS = 0x02
    READ_HOLDING_REGISTERS = 0x03
    READ_INPUT_REGISTERS = 0x04
    WRITE_SINGLE_COIL = 0x05
    WRITE_SINGLE_REGISTER = 0x06
    WRITE_MULTIPLE_COILS = 0x0F
    WRITE_MULTIPLE_REGISTERS = 0x10

    @property
    def quantity_limits(self) -> tuple[int, int]:
        """Legal (min, max) quantity; single writes always carry exactly one unit."""
        return _QUANTITY_LIMITS[self]

    @property
    def is_bit_access(self) -> bool:
        return self in _BIT_FUNCTIONS

    @property
    def is_write(self) -> bool:
        return self >= FunctionCode.WRITE_SINGLE_COIL


_QUANTITY_LIMITS: dict[FunctionCode, tuple[int, int]] = {
    FunctionCode.READ_COILS: (1, 2000),
    FunctionCode.READ_DISCRETE_INPUTS: (1, 2000),
    FunctionCode.READ_HOLDING_REGISTERS: (1, 125),
    FunctionCode.READ_INPUT_REGISTERS: (1, 125),
    FunctionCode.WRITE_SINGLE_COIL: (1, 1),
    FunctionCode.WRITE_SINGLE_REGISTER: (1, 1),
    FunctionCode.WRITE_MULTIPLE_COILS: (1, 1968),
    FunctionCode.WRITE_MULTIPLE_REGISTERS: (1, 123),
}

_BIT_FUNCTIONS = frozenset(
    {
        FunctionCode.READ_COILS,
        FunctionCode.READ_DISCRETE_INPUTS,
        FunctionCode.WRITE_SINGLE_COIL,
        FunctionCode.WRITE_MULTIPLE_COILS,
    }
)


class ExceptionCode(IntEnum):
    """Exception codes a device may report in an exception response."""

    ILLEGAL_FUNCTION = 0x01
    ILLEGAL_DATA_ADDRESS = 0x02
    ILLEGAL_DATA_VALUE = 0x03
    SLAVE_DEVICE_FAILURE = 0x04

    @classmethod
    def describe(cls, code: int) -> str:
        try:
            return cls(code).name.replace("_", " ").lower()
        except ValueError:
            return f"unknown exception 0x{code:02X}"


class WordOrder(str, Enum):
    """Register order for 32-bit values spanning two registers."""

    BIG = "big"  # high word first
    LITTLE = "little"


def parse_address(address: str) -> tuple[str, int]:
    """
    Split "host:port" into (host, port). Port defaults to 502.
    Bracketed IPv6 literals ("[::1]:502") are accepted.
    """
    s = address.strip()
    if not s:
        raise ValueError("address cannot be empty")
    if s.startswith("["):
        host, sep, rest = s[1:].partition("]")
        if not sep:
            raise ValueError(f"Malformed address: {address!r}")
        port_str = rest[1:] if rest.startswith(":") else ""
    elif s.count(":") == 1:
        host, _, port_str = s.partition(":")
    else:
        host, port_str = s, ""
    if not port_str:
        return host, DEFAULT_PORT
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Malformed port in address: {address!r}") from None
    if not 0 < port <= 65535:
        raise ValueError(f"Port out of range 1-65535: {port}")
    return host, port


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for one session. A non-positive timeout selects the default."""

    address: str
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            object.__setattr__(self, "timeout", DEFAULT_TIMEOUT)
        parse_address(self.address)

    @property
    def host(self) -> str:
        return parse_address(self.address)[0]

    @property
    def port(self) -> int:
        return parse_address(self.address)[1]


@dataclass(frozen=True)
class PoolConfig:
    """Settings for a connection pool: one address, a fixed capacity, one timeout."""

    address: str
    capacity: int = DEFAULT_POOL_CAPACITY
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            object.__setattr__(self, "capacity", DEFAULT_POOL_CAPACITY)
        if self.timeout <= 0:
            object.__setattr__(self, "timeout", DEFAULT_TIMEOUT)
        parse_address(self.address)

    def client_config(self) -> ClientConfig:
        return ClientConfig(address=self.address, timeout=self.timeout)
