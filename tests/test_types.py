"""Tests for address parsing, config defaults and the function code table."""

import pytest

from pymbap.types import ClientConfig, ExceptionCode, FunctionCode, PoolConfig, parse_address


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("192.168.1.100:502", ("192.168.1.100", 502)),
        ("plc.local:1502", ("plc.local", 1502)),
        ("plc.local", ("plc.local", 502)),
        ("[::1]:5020", ("::1", 5020)),
        ("[fe80::1]", ("fe80::1", 502)),
    ],
)
def test_parse_address(raw: str, expected: tuple[str, int]) -> None:
    assert parse_address(raw) == expected


@pytest.mark.parametrize("bad", ["", "host:port", "host:0", "host:70000", "[::1"])
def test_parse_address_invalid(bad: str) -> None:
    with pytest.raises(ValueError):
        parse_address(bad)


def test_client_config_default_timeout() -> None:
    assert ClientConfig("h:1", timeout=0).timeout == 5.0
    assert ClientConfig("h:1", timeout=-3).timeout == 5.0
    assert ClientConfig("h:1", timeout=0.5).timeout == 0.5


def test_pool_config_defaults() -> None:
    cfg = PoolConfig("h", capacity=-1, timeout=0)
    assert cfg.capacity == 10
    assert cfg.timeout == 5.0
    assert cfg.client_config() == ClientConfig("h", 5.0)


def test_function_code_wire_values() -> None:
    assert [int(f) for f in FunctionCode] == [0x01, 0x02, 0x03, 0x04, 0x05, 0x06, 0x0F, 0x10]
    assert FunctionCode.WRITE_SINGLE_COIL.quantity_limits == (1, 1)
    assert FunctionCode.READ_DISCRETE_INPUTS.is_bit_access
    assert not FunctionCode.READ_INPUT_REGISTERS.is_write
    assert FunctionCode.WRITE_MULTIPLE_REGISTERS.is_write


def test_exception_code_describe() -> None:
    assert ExceptionCode.describe(0x04) == "slave device failure"
    assert ExceptionCode.describe(0x0A) == "unknown exception 0x0A"
