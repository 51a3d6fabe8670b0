"""Country and port policy applied to relay candidates before probing.

Functions:
    filter_and_sort(candidates, country_rule, ports): Drop candidates that the
        country rule or port allow-list rejects, narrow address lists to the
        allowed ports and order survivors by country preference.

Country rule syntax is a comma-separated list such as ``"se,gb,!us,-ru"``:
``!XX`` restricts the scan to the listed countries, ``-XX`` excludes a
country and a bare ``XX`` ranks that country by its position in the list.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Mapping, Optional, Sequence, Union

from bridge_scanner.relays import RelayCandidate, parse_address

LOGGER = logging.getLogger(__name__)

_UNRANKED = sys.maxsize


@dataclass(frozen=True)
class CountryPolicy:
    exclusive_only: FrozenSet[str] = frozenset()
    excluded: FrozenSet[str] = frozenset()
    preference_order: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def parse(cls, rule: Optional[str]) -> "CountryPolicy":
        """Build a policy from a raw rule string; codes are matched case-insensitively.

        A country listed more than once ranks by its last position.
        """
        exclusive_only = set()
        excluded = set()
        preference_order = {}
        for index, raw_token in enumerate((rule or "").split(",")):
            token = raw_token.strip().lower()
            if token.startswith("!"):
                if token[1:]:
                    exclusive_only.add(token[1:])
            elif token.startswith("-"):
                if token[1:]:
                    excluded.add(token[1:])
            elif token:
                preference_order[token] = index
        return cls(frozenset(exclusive_only), frozenset(excluded), preference_order)

    def allows(self, country: str) -> bool:
        code = (country or "").lower()
        if self.exclusive_only and code not in self.exclusive_only:
            return False
        return code not in self.excluded

    def rank(self, country: str) -> int:
        return self.preference_order.get((country or "").lower(), _UNRANKED)


def _address_port(address: str) -> Optional[str]:
    try:
        return parse_address(address)[1]
    except ValueError:
        return None


def _narrow_addresses(addresses: Sequence[str], ports: FrozenSet[str]) -> List[str]:
    return [address for address in addresses if _address_port(address) in ports]


def filter_and_sort(
    candidates: Iterable[RelayCandidate],
    country_rule: Union[str, CountryPolicy, None] = None,
    ports: Optional[Iterable[Union[str, int]]] = None,
) -> List[RelayCandidate]:
    """Apply the country rule and port allow-list to ``candidates``.

    Args:
        candidates: Relay candidates in their current (shuffled) order.
        country_rule: Raw rule string or an already parsed ``CountryPolicy``.
        ports: Allowed OR ports; when empty every address is kept.

    Returns:
        A new list. Candidates narrowed by port are copies, so the input list
        and its candidates are never modified. The preference sort is stable.
    """
    policy = (
        country_rule
        if isinstance(country_rule, CountryPolicy)
        else CountryPolicy.parse(country_rule)
    )
    allowed_ports = frozenset(str(port).strip() for port in (ports or ()) if str(port).strip())

    filtered: List[RelayCandidate] = []
    for candidate in candidates:
        if not policy.allows(candidate.country):
            continue
        if allowed_ports:
            narrowed = _narrow_addresses(candidate.addresses, allowed_ports)
            if not narrowed:
                continue
            candidate = candidate.with_addresses(narrowed)
        filtered.append(candidate)

    if policy.preference_order:
        filtered.sort(key=lambda relay: policy.rank(relay.country))

    LOGGER.debug(
        "Policy kept %d candidates (exclusive=%s excluded=%s preferred=%s ports=%s)",
        len(filtered),
        sorted(policy.exclusive_only),
        sorted(policy.excluded),
        sorted(policy.preference_order, key=policy.preference_order.get),
        sorted(allowed_ports),
    )
    return filtered


__all__ = ["CountryPolicy", "filter_and_sort"]
