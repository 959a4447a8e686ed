#!/usr/bin/env python3
"""Command-line Modbus TCP client for pymbap using Typer."""

import json
import logging
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .batch import BatchOutcome, run_batch_dicts
from .errors import InvalidArgumentError, ModbusClientError, ProtocolExceptionError
from .floats import read_float32, write_float32
from .session import Session
from .types import DEFAULT_PORT, ClientConfig, WordOrder

app = typer.Typer(
    name="pymbap",
    help="Read and write coils and registers on a Modbus TCP device.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


class ReadKind(str, Enum):
    COILS = "coils"
    DISCRETE = "discrete"
    HOLDING = "holding"
    INPUT = "input"


class WriteKind(str, Enum):
    COIL = "coil"
    REGISTER = "register"


# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Device hostname or IP address", envvar="PYMBAP_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="Modbus TCP port", envvar="PYMBAP_PORT"),
]
UnitIdOption = Annotated[
    int,
    typer.Option("--unit-id", "-u", help="Modbus unit ID", envvar="PYMBAP_UNIT_ID"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Connect and exchange timeout in seconds", envvar="PYMBAP_TIMEOUT"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
SignedOption = Annotated[
    bool,
    typer.Option("--signed", help="Interpret register values as signed 16-bit integers"),
]
FloatOption = Annotated[
    bool,
    typer.Option("--float", help="Treat two consecutive holding registers as a 32-bit IEEE 754 float"),
]
WordOrderOption = Annotated[
    WordOrder,
    typer.Option("--word-order", help="Register order for --float values"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def format_address(host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def open_client(host: Optional[str], port: int, timeout: float) -> Session:
    """Open a Session, exiting with code 2 when no host was given."""
    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    return Session.open(ClientConfig(address=format_address(host, port), timeout=timeout))


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in ("true", "1", "on", "yes"):
        return True
    if v in ("false", "0", "off", "no"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_int(value: str, signed: bool = False) -> int:
    """Parse integer value from string, supporting hex and validation."""
    v = value.strip()
    if v.lower().startswith("0x"):
        num = int(v, 16)
    else:
        num = int(v)

    if signed:
        if not (-32768 <= num <= 32767):
            raise ValueError(f"Signed 16-bit integer out of range: {num}")
    else:
        if not (0 <= num <= 65535):
            raise ValueError(f"Unsigned 16-bit integer out of range: {num}")

    return num


def to_signed(value: int) -> int:
    """Convert unsigned 16-bit to signed."""
    if value > 32767:
        return value - 65536
    return value


def from_signed(value: int) -> int:
    """Convert signed 16-bit to unsigned."""
    if value < 0:
        return value + 65536
    return value


def format_value(value: bool | int, signed: bool = False) -> str:
    """Format value for display."""
    if isinstance(value, bool):
        return str(value).lower()
    if signed:
        return str(to_signed(value))
    return str(value)


def outcome_to_dict(outcome: BatchOutcome) -> dict[str, Any]:
    out: dict[str, Any] = {
        "function": outcome.function.name.lower() if outcome.function is not None else None,
        "ok": outcome.ok,
    }
    if outcome.ok:
        out["values"] = outcome.values
    else:
        out["error"] = str(outcome.error)
        out["error_type"] = type(outcome.error).__name__
    return out


@contextmanager
def cli_errors(verbose: bool) -> Iterator[None]:
    """Map pymbap exceptions to exit codes: 2 invalid argument, 3 device/transport, 4 unexpected."""
    try:
        yield
    except typer.Exit:
        raise
    except (InvalidArgumentError, ValueError) as e:
        typer.echo(f"Error: Invalid argument: {e}", err=True)
        raise typer.Exit(2)
    except ProtocolExceptionError as e:
        typer.echo(f"Error: Device exception ({e.description}): {e}", err=True)
        raise typer.Exit(3)
    except ModbusClientError as e:
        typer.echo(f"Error: Connection/Modbus error: {e}", err=True)
        raise typer.Exit(3)
    except Exception as e:
        typer.echo(f"Error: Unexpected error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        raise typer.Exit(4)


# ============================================================================
# Commands
# ============================================================================

@app.command()
def ping(
    host: HostOption = None,
    port: PortOption = DEFAULT_PORT,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    verbose: VerboseOption = False,
) -> None:
    """
    Test connectivity by reading 1 holding register at address 0.
    """
    setup_logging(verbose)

    with cli_errors(verbose):
        with open_client(host, port, timeout) as client:
            client.read_holding_registers(unit_id, 0, 1)
            typer.echo(f"OK: Connected to {format_address(host or '', port)}")


@app.command()
def read(
    kind: Annotated[ReadKind, typer.Argument(help="Table to read")],
    address: Annotated[int, typer.Argument(help="Starting address (0-based)")],
    count: Annotated[int, typer.Option("--count", "-c", help="Number of coils or registers")] = 1,
    host: HostOption = None,
    port: PortOption = DEFAULT_PORT,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
    signed: SignedOption = False,
    as_float: FloatOption = False,
    word_order: WordOrderOption = WordOrder.BIG,
) -> None:
    """
    Read coils, discrete inputs, holding registers or input registers.

    Use --signed to show registers as signed 16-bit integers.
    Use --float to read two holding registers at ADDRESS as one float.
    """
    setup_logging(verbose)

    with cli_errors(verbose):
        if as_float and kind is not ReadKind.HOLDING:
            raise InvalidArgumentError("--float only applies to holding registers")
        with open_client(host, port, timeout) as client:
            values: list[Any]
            if as_float:
                values = [read_float32(client, unit_id, address, word_order)]
            elif kind is ReadKind.COILS:
                values = client.read_coils(unit_id, address, count)
            elif kind is ReadKind.DISCRETE:
                values = client.read_discrete_inputs(unit_id, address, count)
            elif kind is ReadKind.HOLDING:
                values = client.read_holding_registers(unit_id, address, count)
            else:
                values = client.read_input_registers(unit_id, address, count)

        if json_output:
            if signed and not as_float:
                values = [v if isinstance(v, bool) else to_signed(v) for v in values]
            typer.echo(json.dumps({"kind": kind.value, "address": address, "values": values}))
        elif as_float:
            typer.echo(f"{values[0]:.2f}")
        else:
            for offset, value in enumerate(values):
                typer.echo(f"{address + offset}: {format_value(value, signed)}")


@app.command()
def write(
    kind: Annotated[WriteKind, typer.Argument(help="Table to write")],
    address: Annotated[int, typer.Argument(help="Starting address (0-based)")],
    values: Annotated[list[str], typer.Argument(help="One value writes a single unit; several write a block")],
    host: HostOption = None,
    port: PortOption = DEFAULT_PORT,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    verbose: VerboseOption = False,
    signed: SignedOption = False,
    as_float: FloatOption = False,
    word_order: WordOrderOption = WordOrder.BIG,
) -> None:
    """
    Write coils (true/false/1/0/on/off/yes/no) or registers (decimal or 0x hex).

    A single value uses the single-write function; several values use the
    multiple-write function starting at ADDRESS.
    """
    setup_logging(verbose)

    with cli_errors(verbose):
        if as_float and (kind is not WriteKind.REGISTER or len(values) != 1):
            raise InvalidArgumentError("--float takes exactly one register value")
        parsed: list[Any]
        if as_float:
            parsed = [float(values[0])]
        elif kind is WriteKind.COIL:
            parsed = [parse_bool(v) for v in values]
        else:
            parsed = [from_signed(parse_int(v, signed)) for v in values]

        with open_client(host, port, timeout) as client:
            if as_float:
                write_float32(client, unit_id, address, parsed[0], word_order)
            elif kind is WriteKind.COIL and len(parsed) == 1:
                client.write_single_coil(unit_id, address, parsed[0])
            elif kind is WriteKind.COIL:
                client.write_multiple_coils(unit_id, address, parsed)
            elif len(parsed) == 1:
                client.write_single_register(unit_id, address, parsed[0])
            else:
                client.write_multiple_registers(unit_id, address, parsed)
        typer.echo(f"OK: Wrote {kind.value} {address} = {' '.join(values)}")


@app.command()
def batch(
    file: Annotated[Path, typer.Argument(help="JSON file with a list of operations")],
    host: HostOption = None,
    port: PortOption = DEFAULT_PORT,
    timeout: TimeoutOption = 3.0,
    verbose: VerboseOption = False,
) -> None:
    """
    Run a list of operations over one connection and print one JSON result per item.

    Each item is an object such as {"op": "read_holding", "unit": 1, "address": 0, "quantity": 5}.
    Ops: read_coils, read_discrete_inputs, read_holding, read_input,
    write_coil, write_register, write_coils, write_registers.
    A failing item does not stop the batch.
    """
    setup_logging(verbose)

    if not file.is_file():
        typer.echo(f"Error: Batch file not found: {file}", err=True)
        raise typer.Exit(2)

    with cli_errors(verbose):
        items = json.loads(file.read_text(encoding="utf-8"))
        if not isinstance(items, list):
            raise InvalidArgumentError("batch file must contain a JSON list")
        with open_client(host, port, timeout) as client:
            outcomes = run_batch_dicts(client, items)
        typer.echo(json.dumps([outcome_to_dict(o) for o in outcomes], indent=2))


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pymbap {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """pymbap - Modbus TCP client for coils and registers."""
    pass


if __name__ == "__main__":
    app()
