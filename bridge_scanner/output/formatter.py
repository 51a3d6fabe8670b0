"""Render accepted relays as bridge lines, torrc lines or Tor Browser prefs."""

import logging
from pathlib import Path
from typing import Iterable, List, Sequence, TextIO, Union

from bridge_scanner.errors import PrefsFileError
from bridge_scanner.logging_utils import perf
from bridge_scanner.relays import RelayCandidate

LOGGER = logging.getLogger(__name__)

TORRC_PREFIX = "Bridge "
TORRC_FOOTER = "UseBridges 1"
PREFS_KEY_PREFIX = "torbrowser.settings.bridges."
PREFS_BRIDGE_LINE = 'user_pref("torbrowser.settings.bridges.bridge_strings.{index}", "{bridge}");'
PREFS_FOOTER = (
    'user_pref("torbrowser.settings.bridges.enabled", true);',
    'user_pref("torbrowser.settings.bridges.source", 2);',
)
DEFAULT_PREFS_PATH = "Browser/TorBrowser/Data/Browser/profile.default/prefs.js"


def _bridge_strings(accepted: Iterable[RelayCandidate]) -> List[str]:
    return [line for candidate in accepted for line in candidate.bridge_lines()]


def render_bridges(accepted: Sequence[RelayCandidate], torrc: bool = False) -> str:
    """Return one newline-terminated line per reachable (relay, address) pair.

    In torrc mode each line carries the ``Bridge`` prefix and a final
    ``UseBridges 1`` line is added. An empty accepted set renders as ``""``.
    """
    bridges = _bridge_strings(accepted)
    if not bridges:
        return ""
    prefix = TORRC_PREFIX if torrc else ""
    lines = [prefix + bridge for bridge in bridges]
    if torrc:
        lines.append(TORRC_FOOTER)
    return "\n".join(lines) + "\n"


def write_bridges(accepted: Sequence[RelayCandidate], stream: TextIO, torrc: bool = False) -> int:
    """Write the rendered bridges to ``stream`` and flush it.

    Returns:
        Number of characters written.
    """
    text = render_bridges(accepted, torrc=torrc)
    stream.write(text)
    stream.flush()
    for line in text.splitlines():
        LOGGER.debug("Added to output: %s", line)
    return len(text)


@perf("output.install_prefs", tags={"component": "output"})
def install_prefs(accepted: Sequence[RelayCandidate], prefs_path: Union[str, Path]) -> int:
    """Replace the bridge settings of a Tor Browser ``prefs.js`` file.

    Existing lines mentioning ``torbrowser.settings.bridges.`` are removed,
    then one ``bridge_strings.<n>`` entry per reachable address is appended
    (``n`` counts from zero across all relays) followed by the lines that
    enable bridges and select the user-provided source.

    Args:
        accepted: Relays with reachable addresses, in output order.
        prefs_path: Existing ``prefs.js`` to rewrite in place.

    Returns:
        Number of bridge entries written.

    Raises:
        PrefsFileError: If the file does not exist or cannot be read or written.
    """
    path = Path(prefs_path)
    if not path.is_file():
        raise PrefsFileError(f"prefs.js file does not exist: {path}")
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PrefsFileError(f"can't read {path}: {exc}") from exc

    kept = [line for line in content.splitlines() if PREFS_KEY_PREFIX not in line]
    bridges = _bridge_strings(accepted)
    kept.extend(
        PREFS_BRIDGE_LINE.format(index=index, bridge=bridge)
        for index, bridge in enumerate(bridges)
    )
    kept.extend(PREFS_FOOTER)

    try:
        path.write_text("\n".join(kept) + "\n", encoding="utf-8")
    except OSError as exc:
        raise PrefsFileError(f"can't write {path}: {exc}") from exc

    LOGGER.info("Installed %d bridges into %s", len(bridges), path)
    return len(bridges)


__all__ = [
    "DEFAULT_PREFS_PATH",
    "install_prefs",
    "render_bridges",
    "write_bridges",
]
