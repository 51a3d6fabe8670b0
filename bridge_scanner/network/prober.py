"""TCP reachability probing for relay OR addresses.

Workflow for one batch of candidates:

1) Start one worker per (candidate, address) pair on a thread pool sized to
   the batch's total address count.
2) Each worker dials its address with a timeout and closes the socket at once
   with linger disabled (a reset, not a graceful shutdown).
3) Reachable addresses are appended to the ``BridgeSink`` from the worker as
   soon as they are found, so a killed run keeps what it already discovered.
4) The pool is joined, then the calling thread folds the successes back into
   the candidates in input order.

Dial failures (timeouts, refusals, unreachable networks) are ordinary
results, never exceptions.
"""

import logging
import socket
import struct
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, TextIO, Tuple, Union

from bridge_scanner.errors import SinkUnavailableError
from bridge_scanner.relays import RelayCandidate, bridge_line, parse_address

LOGGER = logging.getLogger(__name__)

_LINGER_RESET = struct.pack("ii", 1, 0)


@dataclass
class AddressProbe:
    """Result of dialing a single relay address.

    Attributes:
        address: The ``host:port`` string that was dialed.
        fingerprint: Fingerprint of the relay owning the address.
        ok: Whether the TCP handshake completed within the timeout.
        latency_ms: Time spent dialing in milliseconds.
        error: Error string when the dial failed.
    """

    address: str
    fingerprint: str
    ok: bool
    latency_ms: float
    error: Optional[str] = None


class BridgeSink:
    """Append-only bridges file shared by every probe worker of a run.

    Each ``append`` writes and flushes one ``"<address> <fingerprint>"`` line
    under a single lock. The file is opened in append mode and never
    truncated, so repeated runs accumulate results.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()
        self.lines_written = 0

    @classmethod
    def open(cls, path: Union[str, Path]) -> "BridgeSink":
        """Open ``path`` for appending.

        Raises:
            SinkUnavailableError: If the file cannot be opened.
        """
        try:
            stream = open(path, "a", encoding="utf-8")
        except OSError as exc:
            raise SinkUnavailableError(f"can't open bridges file {path}: {exc}") from exc
        LOGGER.debug("Appending reachable bridges to %s", path)
        return cls(stream)

    def append(self, address: str, fingerprint: str) -> None:
        """Write and flush one bridge line.

        Raises:
            SinkUnavailableError: If the line cannot be written.
        """
        line = bridge_line(address, fingerprint) + "\n"
        with self._lock:
            try:
                self._stream.write(line)
                self._stream.flush()
            except OSError as exc:
                raise SinkUnavailableError(f"can't write to bridges file: {exc}") from exc
            self.lines_written += 1

    def close(self) -> None:
        with self._lock:
            self._stream.close()

    def __enter__(self) -> "BridgeSink":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


def check_address(address: str, fingerprint: str = "", *, timeout_seconds: float = 10.0) -> AddressProbe:
    """Dial ``address`` over TCP and close the connection immediately.

    Args:
        address: ``host:port`` or ``[ipv6]:port``.
        fingerprint: Relay fingerprint, carried into the result.
        timeout_seconds: Connect timeout.

    Returns:
        An ``AddressProbe``; failures are reported through ``ok``/``error``.
    """
    start_ns = time.perf_counter_ns()
    try:
        host, port = parse_address(address)
        conn = socket.create_connection((host, int(port)), timeout=timeout_seconds)
    except (OSError, ValueError) as exc:
        return AddressProbe(
            address=address,
            fingerprint=fingerprint,
            ok=False,
            latency_ms=(time.perf_counter_ns() - start_ns) / 1_000_000.0,
            error=str(exc) or exc.__class__.__name__,
        )
    elapsed_ms = (time.perf_counter_ns() - start_ns) / 1_000_000.0
    try:
        conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, _LINGER_RESET)
    except OSError:  # some platforms refuse SO_LINGER on connected sockets
        pass
    finally:
        conn.close()
    return AddressProbe(address=address, fingerprint=fingerprint, ok=True, latency_ms=elapsed_ms)


Checker = Callable[..., AddressProbe]


def probe_batch(
    batch: Sequence[RelayCandidate],
    timeout_seconds: float,
    sink: BridgeSink,
    *,
    check: Checker = check_address,
) -> List[RelayCandidate]:
    """Probe every address of every candidate in ``batch`` concurrently.

    Args:
        batch: Candidates to test; each must not have been probed before.
        timeout_seconds: Connect timeout applied to every dial.
        sink: Receives one line per reachable address as soon as it is found.
        check: Dial function, replaceable in tests.

    Returns:
        The candidates of ``batch`` with at least one reachable address, in
        input order. Their ``reachable_addresses`` follow address order.
    """
    tasks: List[Tuple[int, int, str]] = [
        (relay_idx, addr_idx, address)
        for relay_idx, candidate in enumerate(batch)
        for addr_idx, address in enumerate(candidate.addresses)
    ]
    if not tasks:
        LOGGER.info("Batch of %d relays has no addresses to probe", len(batch))
        return []

    def worker(relay_idx: int, address: str) -> AddressProbe:
        fingerprint = batch[relay_idx].fingerprint
        probe = check(address, fingerprint, timeout_seconds=timeout_seconds)
        if probe.ok:
            try:
                sink.append(address, fingerprint)
            except SinkUnavailableError as exc:
                # The dial still succeeded; the relay stays in the accepted set.
                LOGGER.error("Failed to record %s %s: %s", address, fingerprint, exc)
        return probe

    succeeded: Dict[int, List[int]] = {}
    failures = 0
    with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="probe") as executor:
        futures = {
            executor.submit(worker, relay_idx, address): (relay_idx, addr_idx)
            for relay_idx, addr_idx, address in tasks
        }
        for fut in as_completed(futures):
            relay_idx, addr_idx = futures[fut]
            probe = fut.result()
            if probe.ok:
                LOGGER.info("Reachable: %s %s (%.0f ms)", probe.address, probe.fingerprint, probe.latency_ms)
                succeeded.setdefault(relay_idx, []).append(addr_idx)
            else:
                failures += 1
                LOGGER.debug("Failed to connect to %s: %s", probe.address, probe.error)

    accepted: List[RelayCandidate] = []
    for relay_idx, candidate in enumerate(batch):
        if relay_idx not in succeeded:
            continue
        for addr_idx in sorted(succeeded[relay_idx]):
            candidate.record_reachable(candidate.addresses[addr_idx])
        accepted.append(candidate)

    LOGGER.info(
        "Probed %d addresses of %d relays: reachable=%d failed=%d",
        len(tasks),
        len(batch),
        len(tasks) - failures,
        failures,
    )
    return accepted


__all__ = ["AddressProbe", "BridgeSink", "check_address", "probe_batch"]
