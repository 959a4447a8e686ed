#!/usr/bin/env python3
"""Example: share a bounded pool of sessions between worker threads."""

import sys
import threading

from pymbap import ConnectionPool
from pymbap.errors import ModbusClientError, PoolTimeoutError


def worker(pool: ConnectionPool, worker_id: int) -> None:
    try:
        with pool.session(timeout=2.0) as session:
            registers = session.read_holding_registers(1, worker_id * 10, 5)
            print(f"worker {worker_id}: {registers}")
    except PoolTimeoutError:
        print(f"worker {worker_id}: no connection available", file=sys.stderr)
    except ModbusClientError as e:
        print(f"worker {worker_id}: {e}", file=sys.stderr)


def main() -> None:
    address = "192.168.1.100:502"  # change to your device

    try:
        pool = ConnectionPool(address, capacity=5, timeout=5.0)
    except ModbusClientError as e:
        print(f"Failed to create pool: {e}", file=sys.stderr)
        sys.exit(1)

    with pool:
        threads = [threading.Thread(target=worker, args=(pool, i)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()


if __name__ == "__main__":
    main()
