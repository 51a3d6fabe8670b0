import io
from unittest.mock import MagicMock

import pytest

from bridge_scanner.config import AppConfig
from bridge_scanner.errors import DirectoryUnavailableError, NoCandidatesError, PrefsFileError
from bridge_scanner.jobs import BatchScheduler, ScanConfig, ScanState, prepare_candidates, run_scan
from bridge_scanner.relays import RelayCandidate


def _candidates(count, country=""):
    return [RelayCandidate(f"FP{i:02d}", country, [f"10.0.0.{i}:443"]) for i in range(count)]


class ScriptedProbe:
    """Accepts the first ``n`` relays of each batch, ``n`` taken from ``yields``."""

    def __init__(self, yields, scheduler_ref=None):
        self._yields = list(yields)
        self.batches = []
        self.states = []
        self.scheduler = scheduler_ref

    def __call__(self, batch, timeout_seconds, sink):
        self.batches.append(list(batch))
        if self.scheduler is not None:
            self.states.append(self.scheduler.state)
        count = self._yields.pop(0) if self._yields else 0
        accepted = []
        for candidate in batch[:count]:
            candidate.record_reachable(candidate.addresses[0])
            sink.append(candidate.addresses[0], candidate.fingerprint)
            accepted.append(candidate)
        return accepted


def test_scheduler_overshoots_goal_on_last_batch(list_sink):
    probe = ScriptedProbe([0, 2, 2, 2])
    scheduler = BatchScheduler(2, 3, 1.0, list_sink, probe=probe)

    result = scheduler.run(_candidates(8))

    assert result.state is ScanState.GOAL_REACHED
    assert scheduler.state is ScanState.GOAL_REACHED
    assert result.batches_run == 3
    assert len(probe.batches) == 3
    assert len(result.accepted) == 4
    assert [c.fingerprint for c in result.accepted] == ["FP02", "FP03", "FP04", "FP05"]
    assert result.addresses_probed == 6
    assert result.addresses_reachable == 4


def test_scheduler_stops_exactly_at_goal(list_sink):
    probe = ScriptedProbe([1, 2, 2])
    result = BatchScheduler(2, 3, 1.0, list_sink, probe=probe).run(_candidates(6))

    assert result.batches_run == 2
    assert len(result.accepted) == 3


def test_scheduler_exhausts_candidates(list_sink):
    probe = ScriptedProbe([0, 1, 0])
    scheduler = BatchScheduler(2, 5, 1.0, list_sink, probe=probe)

    result = scheduler.run(_candidates(5))

    assert result.state is ScanState.EXHAUSTED
    assert [len(batch) for batch in probe.batches] == [2, 2, 1]
    assert [c.fingerprint for c in result.accepted] == ["FP02"]


def test_scheduler_with_no_reachable_relay_is_an_empty_success(list_sink):
    result = BatchScheduler(3, 1, 1.0, list_sink, probe=ScriptedProbe([])).run(_candidates(7))

    assert result.state is ScanState.EXHAUSTED
    assert result.accepted == []
    assert result.batches_run == 3


def test_scheduler_rejects_empty_candidates(list_sink):
    scheduler = BatchScheduler(2, 1, 1.0, list_sink, probe=ScriptedProbe([]))

    with pytest.raises(NoCandidatesError):
        scheduler.run([])
    assert scheduler.state is ScanState.NOT_STARTED


def test_scheduler_is_running_while_probing_and_single_use(list_sink):
    probe = ScriptedProbe([1])
    scheduler = BatchScheduler(2, 1, 1.0, list_sink, probe=probe)
    probe.scheduler = scheduler

    scheduler.run(_candidates(4))

    assert probe.states == [ScanState.RUNNING]
    with pytest.raises(RuntimeError):
        scheduler.run(_candidates(4))


def test_scheduler_passes_timeout_and_sink(list_sink):
    probe = MagicMock(return_value=[])
    BatchScheduler(10, 1, 4.5, list_sink, probe=probe).run(_candidates(3))

    args, _ = probe.call_args
    assert args[1] == 4.5
    assert args[2] is list_sink


@pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"goal": 0}, {"timeout_seconds": 0}])
def test_scan_config_validates(kwargs):
    with pytest.raises(ValueError):
        ScanConfig(**kwargs)


RECORDS = [
    {"fingerprint": f"FP{i:02d}", "country": country, "or_addresses": [f"10.0.0.{i}:443", f"10.0.0.{i}:9001"]}
    for i, country in enumerate(["de", "se", "us", "se", "ru", "de", "nl", "se"])
]


def test_prepare_candidates_is_reproducible_with_seed():
    config = ScanConfig(seed=42)

    first = [c.fingerprint for c in prepare_candidates(RECORDS, config)]
    second = [c.fingerprint for c in prepare_candidates(RECORDS, config)]

    assert first == second
    assert sorted(first) == sorted(r["fingerprint"] for r in RECORDS)


def test_prepare_candidates_applies_policy_after_shuffle():
    config = ScanConfig(seed=3, country_rule="se,-ru", ports=("9001",))

    result = prepare_candidates(RECORDS, config)

    assert [c.country for c in result][:3] == ["se", "se", "se"]
    assert "ru" not in {c.country for c in result}
    assert all(c.addresses == [c.addresses[0]] and c.addresses[0].endswith(":9001") for c in result)


def _client(records=RECORDS):
    client = MagicMock()
    client.fetch_relays.return_value = records
    return client


def test_run_scan_writes_output_and_sink(app_config):
    output = io.StringIO()
    probe = ScriptedProbe([2])
    config = ScanConfig(batch_size=4, goal=2, seed=1, torrc=True)

    result = run_scan(app_config, _client(), config, output, probe=probe)

    assert result.state is ScanState.GOAL_REACHED
    lines = output.getvalue().splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("Bridge 10.0.0.")
    assert lines[-1] == "UseBridges 1"
    assert len(app_config.bridges_file.read_text(encoding="utf-8").splitlines()) == 2


def test_run_scan_passes_preferred_urls(app_config):
    client = _client()
    config_with_urls = AppConfig(
        log_directory=app_config.log_directory,
        log_level="INFO",
        bridges_file=app_config.bridges_file,
        directory_urls=("https://mirror.example/relays.json",),
    )

    run_scan(config_with_urls, client, ScanConfig(seed=1), io.StringIO(), probe=ScriptedProbe([]))

    client.fetch_relays.assert_called_once_with(("https://mirror.example/relays.json",))


def test_run_scan_without_reachable_relays_writes_nothing(app_config):
    output = io.StringIO()

    result = run_scan(app_config, _client(), ScanConfig(batch_size=3, torrc=True), output, probe=ScriptedProbe([]))

    assert result.accepted == []
    assert output.getvalue() == ""
    assert app_config.bridges_file.read_text(encoding="utf-8") == ""


def test_run_scan_no_matching_relays_fails_before_probing(app_config):
    probe = ScriptedProbe([1])

    with pytest.raises(NoCandidatesError):
        run_scan(app_config, _client(), ScanConfig(country_rule="!jp"), io.StringIO(), probe=probe)

    assert probe.batches == []
    assert not app_config.bridges_file.exists()


def test_run_scan_propagates_directory_failure(app_config):
    client = MagicMock()
    client.fetch_relays.side_effect = DirectoryUnavailableError(["https://a.example"])

    with pytest.raises(DirectoryUnavailableError):
        run_scan(app_config, client, ScanConfig(), io.StringIO(), probe=ScriptedProbe([1]))


def test_run_scan_installs_prefs(app_config, tmp_path):
    prefs = tmp_path / "prefs.js"
    prefs.write_text('user_pref("browser.startup.homepage", "about:tor");\n', encoding="utf-8")
    config = ScanConfig(batch_size=8, goal=1, seed=5, prefs_path=str(prefs))

    run_scan(app_config, _client(), config, io.StringIO(), probe=ScriptedProbe([2]))

    contents = prefs.read_text(encoding="utf-8")
    assert "bridge_strings.0" in contents
    assert "bridge_strings.1" in contents
    assert 'user_pref("torbrowser.settings.bridges.source", 2);' in contents


def test_run_scan_prefs_failure_keeps_output(app_config, tmp_path):
    output = io.StringIO()
    config = ScanConfig(batch_size=8, goal=1, seed=5, prefs_path=str(tmp_path / "absent.js"))

    with pytest.raises(PrefsFileError):
        run_scan(app_config, _client(), config, output, probe=ScriptedProbe([1]))

    assert len(output.getvalue().splitlines()) == 1
