"""Network reachability probing for relay addresses.

Exports:
- ``check_address``: one TCP connect with timeout and linger disabled.
- ``probe_batch``: dial every address of a batch concurrently with a join barrier.
- ``BridgeSink``: lock-guarded append-only bridges file.
- ``AddressProbe``: outcome of a single dial.
"""

from bridge_scanner.network.prober import (
    AddressProbe,
    BridgeSink,
    check_address,
    probe_batch,
)

__all__ = [
    "AddressProbe",
    "BridgeSink",
    "check_address",
    "probe_batch",
]
