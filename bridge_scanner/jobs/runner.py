"""Scan runner orchestrating directory fetch, filtering, batched probing and output."""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, TextIO, Tuple

from bridge_scanner.api import OnionooClient
from bridge_scanner.config import AppConfig
from bridge_scanner.errors import NoCandidatesError
from bridge_scanner.logging_utils import perf, perf_span
from bridge_scanner.network import BridgeSink, probe_batch
from bridge_scanner.output import install_prefs, write_bridges
from bridge_scanner.policy import filter_and_sort
from bridge_scanner.relays import RelayCandidate, parse_relay_records

LOGGER = logging.getLogger(__name__)

BatchProbe = Callable[[Sequence[RelayCandidate], float, BridgeSink], List[RelayCandidate]]


class ScanState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    GOAL_REACHED = "goal_reached"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ScanConfig:
    batch_size: int = 30
    goal: int = 5
    timeout_seconds: float = 10.0
    country_rule: str = ""
    ports: Tuple[str, ...] = ()
    seed: Optional[int] = None
    torrc: bool = False
    prefs_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")
        if self.goal < 1:
            raise ValueError("goal must be positive")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


@dataclass
class ScanResult:
    """Outcome of a scheduler run.

    ``accepted`` keeps batch order, and input order within a batch. It may
    hold more relays than the goal because the goal is only checked once a
    whole batch has finished.
    """

    accepted: List[RelayCandidate] = field(default_factory=list)
    state: ScanState = ScanState.NOT_STARTED
    batches_run: int = 0
    addresses_probed: int = 0

    @property
    def addresses_reachable(self) -> int:
        return sum(len(candidate.reachable_addresses) for candidate in self.accepted)


def _batches(candidates: Sequence[RelayCandidate], size: int) -> Iterator[Sequence[RelayCandidate]]:
    for start in range(0, len(candidates), size):
        yield candidates[start : start + size]


class BatchScheduler:
    """Drive ``probe_batch`` over consecutive batches until the goal is met.

    Batches run strictly one after another. Each batch is probed to
    completion before the goal is checked, so a run never cancels in-flight
    dials; the last batch can overshoot the goal.
    """

    def __init__(
        self,
        batch_size: int,
        goal: int,
        timeout_seconds: float,
        sink: BridgeSink,
        *,
        probe: BatchProbe = probe_batch,
    ) -> None:
        if batch_size < 1 or goal < 1:
            raise ValueError("batch_size and goal must be positive")
        self._batch_size = batch_size
        self._goal = goal
        self._timeout_seconds = timeout_seconds
        self._sink = sink
        self._probe = probe
        self.state = ScanState.NOT_STARTED

    def run(self, candidates: Sequence[RelayCandidate]) -> ScanResult:
        """Probe ``candidates`` batch by batch.

        Raises:
            NoCandidatesError: If ``candidates`` is empty.
            RuntimeError: If this scheduler has already run.
        """
        if self.state is not ScanState.NOT_STARTED:
            raise RuntimeError(f"scheduler already used (state={self.state.value})")
        if not candidates:
            raise NoCandidatesError("no relay candidates to test")

        self.state = ScanState.RUNNING
        result = ScanResult(state=self.state)
        total_batches = (len(candidates) + self._batch_size - 1) // self._batch_size

        for attempt, batch in enumerate(_batches(candidates, self._batch_size), start=1):
            LOGGER.info(
                "Attempt %d/%d, testing %d random relays (found %d so far)",
                attempt,
                total_batches,
                len(batch),
                len(result.accepted),
            )
            for candidate in batch:
                LOGGER.debug("Testing %s %s", candidate.fingerprint, candidate.addresses)

            with perf_span("scan.batch", tags={"attempt": attempt, "relays": len(batch)}, logger=LOGGER):
                accepted_now = self._probe(batch, self._timeout_seconds, self._sink)

            result.batches_run = attempt
            result.addresses_probed += sum(len(candidate.addresses) for candidate in batch)
            result.accepted.extend(accepted_now)

            if accepted_now:
                for candidate in accepted_now:
                    for line in candidate.bridge_lines():
                        LOGGER.info("Reachable this attempt: %s", line)
            else:
                LOGGER.info("No relays are reachable this attempt.")

            if len(result.accepted) >= self._goal:
                self.state = ScanState.GOAL_REACHED
                break
        else:
            self.state = ScanState.EXHAUSTED

        result.state = self.state
        if result.accepted:
            LOGGER.info(
                "Scan finished: state=%s relays=%d addresses=%d goal=%d batches=%d",
                self.state.value,
                len(result.accepted),
                result.addresses_reachable,
                self._goal,
                result.batches_run,
            )
        else:
            LOGGER.warning("No reachable bridges found after %d batches.", result.batches_run)
        return result


def prepare_candidates(
    records: Sequence[Mapping[str, Any]],
    scan_config: ScanConfig,
) -> List[RelayCandidate]:
    """Parse directory records, shuffle them and apply the scan policy.

    The shuffle uses ``random.Random(scan_config.seed)`` so a fixed seed gives
    a reproducible order. Shuffling happens before the stable preference sort,
    so relays of the same country rank stay randomly ordered.
    """
    candidates = parse_relay_records(records)
    random.Random(scan_config.seed).shuffle(candidates)
    return filter_and_sort(candidates, scan_config.country_rule, scan_config.ports)


@perf("jobs.run_scan", tags={"component": "jobs"})
def run_scan(
    config: AppConfig,
    client: OnionooClient,
    scan_config: ScanConfig,
    output: TextIO,
    *,
    probe: BatchProbe = probe_batch,
) -> ScanResult:
    """Run one complete scan and write its output.

    Plain or torrc output is written to ``output`` before the optional
    ``prefs.js`` update, so a prefs failure never loses it.

    Raises:
        DirectoryUnavailableError: If no directory source answered.
        NoCandidatesError: If no relay survives the policy.
        SinkUnavailableError: If the bridges file cannot be opened.
        PrefsFileError: If ``scan_config.prefs_path`` cannot be updated.
    """
    LOGGER.info("Tor relay scanner. Will scan up to %d working relays", scan_config.goal)
    records = client.fetch_relays(config.directory_urls)

    candidates = prepare_candidates(records, scan_config)
    LOGGER.info("%d of %d relays match the scan policy", len(candidates), len(records))
    if not candidates:
        raise NoCandidatesError("No relays match the specified criteria")

    with BridgeSink.open(config.bridges_file) as sink:
        scheduler = BatchScheduler(
            scan_config.batch_size,
            scan_config.goal,
            scan_config.timeout_seconds,
            sink,
            probe=probe,
        )
        result = scheduler.run(candidates)

    if result.accepted:
        write_bridges(result.accepted, output, torrc=scan_config.torrc)
        if scan_config.prefs_path:
            install_prefs(result.accepted, scan_config.prefs_path)
    return result


__all__ = [
    "BatchScheduler",
    "ScanConfig",
    "ScanResult",
    "ScanState",
    "prepare_candidates",
    "run_scan",
]
