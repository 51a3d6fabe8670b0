"""Output formats for the accepted bridge set."""

from bridge_scanner.output.formatter import (
    DEFAULT_PREFS_PATH,
    install_prefs,
    render_bridges,
    write_bridges,
)

__all__ = ["DEFAULT_PREFS_PATH", "install_prefs", "render_bridges", "write_bridges"]
