#!/usr/bin/env python3
"""Example: open a session, read and write coils and registers, run a batch."""

import sys

from pymbap import (
    ClientConfig,
    ReadCoils,
    ReadHoldingRegisters,
    Session,
    WriteMultipleRegisters,
    run_batch,
)
from pymbap.errors import ModbusClientError, ProtocolExceptionError, TransportError


def main() -> None:
    config = ClientConfig(address="192.168.1.100:502", timeout=5.0)  # change to your device
    unit = 1

    try:
        with Session.open(config) as session:
            print(f"Coils 0-9: {session.read_coils(unit, 0, 10)}")
            print(f"Holding registers 0-4: {session.read_holding_registers(unit, 0, 5)}")

            session.write_single_coil(unit, 0, True)
            session.write_single_register(unit, 0, 1234)
            session.write_multiple_coils(unit, 10, [True, False, True, False, True])

            outcomes = run_batch(
                session,
                [
                    ReadCoils(unit, 0, 10),
                    WriteMultipleRegisters(unit, 100, (1, 2, 3, 4, 5)),
                    ReadHoldingRegisters(unit, 100, 5),
                ],
            )
            for outcome in outcomes:
                status = outcome.values if outcome.ok else f"error: {outcome.error}"
                print(f"{outcome.function.name}: {status}")
    except ProtocolExceptionError as e:
        print(f"Device exception ({e.description}): {e}", file=sys.stderr)
        sys.exit(1)
    except TransportError as e:
        print(f"Connection error: {e}", file=sys.stderr)
        sys.exit(1)
    except ModbusClientError as e:
        print(f"Modbus error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
