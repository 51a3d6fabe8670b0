"""Shared pytest fixtures for the bridge_scanner tests.

Provides fake dialers, candidate factories and loopback sockets so probing
tests stay deterministic and never leave the machine.
"""

import socket
import threading
from pathlib import Path
from typing import Callable, Generator, Iterable, List

import pytest

from bridge_scanner.config import AppConfig
from bridge_scanner.network.prober import AddressProbe
from bridge_scanner.relays import RelayCandidate


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Application config fixture writing logs and bridges under ``tmp_path``."""
    return AppConfig(
        log_directory=tmp_path / "logs",
        log_level="INFO",
        bridges_file=tmp_path / "_bridges.txt",
    )


@pytest.fixture
def make_candidate() -> Callable[..., RelayCandidate]:
    def factory(fingerprint: str, country: str = "", *addresses: str) -> RelayCandidate:
        return RelayCandidate(fingerprint=fingerprint, country=country, addresses=list(addresses))

    return factory


class FakeChecker:
    """Stand-in for ``check_address`` that succeeds for a fixed set of addresses."""

    def __init__(self, reachable: Iterable[str] = ()) -> None:
        self.reachable = set(reachable)
        self.calls: List[str] = []
        self.timeouts: List[float] = []
        self._lock = threading.Lock()

    def __call__(self, address: str, fingerprint: str = "", *, timeout_seconds: float = 10.0) -> AddressProbe:
        with self._lock:
            self.calls.append(address)
            self.timeouts.append(timeout_seconds)
        ok = address in self.reachable
        return AddressProbe(
            address=address,
            fingerprint=fingerprint,
            ok=ok,
            latency_ms=1.0,
            error=None if ok else "connection refused",
        )


@pytest.fixture
def fake_checker() -> FakeChecker:
    return FakeChecker()


class ListSink:
    """In-memory stand-in for ``BridgeSink``."""

    def __init__(self) -> None:
        self.lines: List[str] = []
        self._lock = threading.Lock()

    def append(self, address: str, fingerprint: str) -> None:
        with self._lock:
            self.lines.append(f"{address} {fingerprint}")


@pytest.fixture
def list_sink() -> ListSink:
    return ListSink()


@pytest.fixture
def listening_address() -> Generator[str, None, None]:
    """``127.0.0.1:<port>`` of a socket that accepts connections."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(16)
    port = server.getsockname()[1]
    yield f"127.0.0.1:{port}"
    server.close()


@pytest.fixture
def closed_address() -> str:
    """``127.0.0.1:<port>`` with nothing listening, so connects are refused."""
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return f"127.0.0.1:{port}"

