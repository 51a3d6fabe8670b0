"""Relay candidates parsed from the Onionoo relay directory."""

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, List, Mapping, Sequence, Tuple


@dataclass
class RelayCandidate:
    """A relay entry from the directory, before and after probing.

    ``reachable_addresses`` starts empty and is only ever appended to, by the
    thread that aggregates a batch's probe results.
    """

    fingerprint: str
    country: str = ""
    addresses: List[str] = field(default_factory=list)
    reachable_addresses: List[str] = field(default_factory=list)

    @property
    def is_reachable(self) -> bool:
        return bool(self.reachable_addresses)

    def record_reachable(self, address: str) -> None:
        if address not in self.addresses:
            raise ValueError(f"{address} is not an address of relay {self.fingerprint}")
        self.reachable_addresses.append(address)

    def bridge_lines(self) -> List[str]:
        """Return ``"<address> <fingerprint>"`` for every reachable address."""
        return [bridge_line(address, self.fingerprint) for address in self.reachable_addresses]

    def with_addresses(self, addresses: Sequence[str]) -> "RelayCandidate":
        """Return a copy restricted to ``addresses``; the original is untouched."""
        return replace(self, addresses=list(addresses), reachable_addresses=[])


def bridge_line(address: str, fingerprint: str) -> str:
    return f"{address} {fingerprint}"


def parse_address(address: str) -> Tuple[str, str]:
    """Split an OR address into host and port strings.

    ``[2001:db8::1]:443`` yields ``("2001:db8::1", "443")``; bracketed IPv6
    literals split on the last colon, everything else on the first.

    Raises:
        ValueError: If the address has no port or no host.
    """
    raw = (address or "").strip()
    last_colon = raw.rfind(":")
    if last_colon == -1:
        raise ValueError(f"address has no port: {address!r}")

    if raw.startswith("[") and raw[:last_colon].endswith("]"):
        host, port = raw[1 : last_colon - 1], raw[last_colon + 1 :]
    else:
        host, port = raw.split(":", 1)

    if not host or not port:
        raise ValueError(f"malformed address: {address!r}")
    return host, port


def _to_address_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def parse_relay_records(records: Iterable[Mapping[str, Any]]) -> List[RelayCandidate]:
    """Build candidates from Onionoo ``relays`` entries.

    Entries without a fingerprint are skipped. Country codes are lowercased as
    Onionoo publishes them; a missing country becomes ``""``.
    """
    candidates: List[RelayCandidate] = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        fingerprint = record.get("fingerprint")
        if not isinstance(fingerprint, str) or not fingerprint.strip():
            continue
        country = record.get("country")
        candidates.append(
            RelayCandidate(
                fingerprint=fingerprint.strip(),
                country=country.strip().lower() if isinstance(country, str) else "",
                addresses=_to_address_list(record.get("or_addresses")),
            )
        )
    return candidates


__all__ = ["RelayCandidate", "bridge_line", "parse_address", "parse_relay_records"]
