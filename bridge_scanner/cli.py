"""Command-line entrypoint for the Tor bridge scanner.

Exit codes: 0 on success (including runs that find no reachable relay),
1 for configuration errors, 2 when the scan cannot start (directory
unavailable, no candidates, bridges file or output file unusable), 3 when the
bridges were written but ``prefs.js`` could not be updated, 130 when
interrupted.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from bridge_scanner.api import OnionooClient
from bridge_scanner.browser import start_browser
from bridge_scanner.config import DEFAULT_BRIDGES_FILE, AppConfig, load_config
from bridge_scanner.errors import BrowserNotFoundError, PrefsFileError, ScannerError
from bridge_scanner.jobs import ScanConfig, run_scan
from bridge_scanner.logging_utils import configure_logging, perf_span
from bridge_scanner.output import DEFAULT_PREFS_PATH

LOGGER = logging.getLogger(__name__)

DESCRIPTION = (
    "Downloads all Tor relay addresses from onionoo.torproject.org and checks "
    "whether random relays are reachable."
)


def _port_list(value: str) -> List[str]:
    ports = [part.strip() for part in value.split(",") if part.strip()]
    for port in ports:
        if not port.isdigit() or not 0 < int(port) < 65536:
            raise argparse.ArgumentTypeError(f"invalid port: {port!r}")
    return [str(int(port)) for port in ports]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=DESCRIPTION)
    parser.add_argument(
        "-n",
        "--num-relays",
        type=int,
        default=30,
        help="Number of relays tested concurrently per attempt (default: 30).",
    )
    parser.add_argument(
        "-g",
        "--goal",
        type=int,
        default=5,
        help="Test until at least this number of working relays are found (default: 5).",
    )
    parser.add_argument(
        "-c",
        "--preferred-country",
        type=str,
        default="",
        help="Preferred/excluded/exclusive country list, comma-separated (e.g. se,gb,!us,-ru).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Directory download and socket connect timeout in seconds (default: 10.0).",
    )
    parser.add_argument(
        "-o",
        "--outfile",
        type=Path,
        default=None,
        help="Write reachable relays to this file instead of stdout.",
    )
    parser.add_argument(
        "--torrc",
        action="store_true",
        help='Output in torrc format (with "Bridge" prefix and "UseBridges 1").',
    )
    parser.add_argument(
        "--proxy",
        type=str,
        default=None,
        help="Proxy for the relay directory download (http://host:port, socks5h://host:port).",
    )
    parser.add_argument(
        "--url",
        type=str,
        action="append",
        default=None,
        help="Preferred alternative URL for the relay directory. Can be repeated.",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=_port_list,
        action="append",
        default=None,
        help="Only scan relays on these ports (e.g. 443 or 443,9001). Can be repeated.",
    )
    parser.add_argument(
        "--browser",
        type=str,
        nargs="?",
        const=DEFAULT_PREFS_PATH,
        default=None,
        dest="prefsjs",
        metavar="/path/to/prefs.js",
        help="Install found relays into the Tor Browser configuration file.",
    )
    parser.add_argument(
        "--start-browser",
        action="store_true",
        help="Launch Tor Browser after scanning.",
    )
    parser.add_argument(
        "--bridges-file",
        type=Path,
        default=None,
        help=f"Append reachable relays to this file as they are found (default: {DEFAULT_BRIDGES_FILE}).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the relay shuffle, for reproducible runs.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Alternate dotenv file (default: ./.env).",
    )
    return parser.parse_args(argv)


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    return replace(
        config,
        bridges_file=args.bridges_file or config.bridges_file,
        proxy=args.proxy or config.proxy,
        directory_urls=tuple(args.url or ()) + config.directory_urls,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.env_file)
    except ValueError as exc:
        fallback = AppConfig(
            log_directory=Path.cwd() / "logs",
            log_level="INFO",
            bridges_file=Path(DEFAULT_BRIDGES_FILE),
        )
        configure_logging(fallback)
        LOGGER.error("Failed to load configuration: %s", exc)
        return 1

    config = _apply_overrides(config, args)
    configure_logging(config)

    try:
        scan_config = ScanConfig(
            batch_size=args.num_relays,
            goal=args.goal,
            timeout_seconds=args.timeout,
            country_rule=args.preferred_country,
            ports=tuple(port for group in (args.port or ()) for port in group),
            seed=args.seed,
            torrc=args.torrc,
            prefs_path=args.prefsjs,
        )
    except ValueError as exc:
        LOGGER.error("Invalid scan settings: %s", exc)
        return 1

    if args.outfile:
        try:
            output = open(args.outfile, "w", encoding="utf-8")
        except OSError as exc:
            LOGGER.error("Failed to create output file: %s", exc)
            return 2
    else:
        output = sys.stdout

    exit_code = 0
    try:
        with OnionooClient(timeout=scan_config.timeout_seconds, proxy=config.proxy) as client:
            with perf_span("scan.total", tags={"goal": scan_config.goal, "app": config.app_name}):
                run_scan(config, client, scan_config, output)
    except PrefsFileError as exc:
        LOGGER.error("Can't update Tor Browser configuration: %s", exc)
        exit_code = 3
    except ScannerError as exc:
        LOGGER.error("Scan aborted: %s", exc)
        return 2
    except KeyboardInterrupt:
        LOGGER.warning("Interrupted; reachable relays found so far are in %s", config.bridges_file)
        return 130
    finally:
        if output is not sys.stdout:
            output.close()

    if args.start_browser:
        try:
            start_browser()
        except BrowserNotFoundError as exc:
            LOGGER.warning("Browser start failed: %s", exc)

    return exit_code


__all__ = ["main", "parse_args"]
