"""
Message Matching Lists

A matching list is an ordered sequence of elements. Each element constrains
origin domain, sender, destination domain and recipient; each constraint is
a wildcard, a single value, or a set of values. A message matches the list
if it matches any element. Relayers use matching lists as whitelists and
blacklists, and gas payment enforcement uses one to scope its policy.

Lists are serialized to compact JSON strings because the relayer process
receives them through its environment, not in memory.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from xchain_agents.chains import domain_id
from xchain_agents.errors import ConfigurationError
from xchain_agents.observability import Layer, get_logger

logger = get_logger("matching", Layer.MATCHING)

WILDCARD = "*"

# "*", a single value, or a tuple of values
MatchingValue = Union[str, int, Tuple[Union[str, int], ...]]

_FIELD_KEYS = {
    "origin_domain": "originDomain",
    "sender_address": "senderAddress",
    "destination_domain": "destinationDomain",
    "recipient_address": "recipientAddress",
}
_KEY_FIELDS = {v: k for k, v in _FIELD_KEYS.items()}


def _freeze(value: Any) -> MatchingValue:
    # Sets have no stable order across processes
    if isinstance(value, (set, frozenset)):
        return tuple(sorted(value, key=str))
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return value


def _normalize_address(address: str) -> str:
    """Lowercase hex, left-padded to 32 bytes."""
    text = str(address).lower()
    if text.startswith("0x"):
        text = text[2:]
    return text.rjust(64, "0")


def _domain_matches(expected: MatchingValue, domain: int) -> bool:
    if expected == WILDCARD:
        return True
    if isinstance(expected, tuple):
        return any(int(value) == domain for value in expected)
    return int(expected) == domain


def _address_matches(expected: MatchingValue, address: str) -> bool:
    if expected == WILDCARD:
        return True
    actual = _normalize_address(address)
    if isinstance(expected, tuple):
        return any(_normalize_address(value) == actual for value in expected)
    return _normalize_address(expected) == actual


@dataclass(frozen=True)
class Message:
    """The routing fields of an interchain message."""
    origin_domain: int
    sender: str
    destination_domain: int
    recipient: str


@dataclass(frozen=True)
class MatchingListElement:
    """One predicate of a matching list. Unset fields are wildcards."""
    origin_domain: MatchingValue = WILDCARD
    sender_address: MatchingValue = WILDCARD
    destination_domain: MatchingValue = WILDCARD
    recipient_address: MatchingValue = WILDCARD

    def __post_init__(self):
        for name in _FIELD_KEYS:
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    @property
    def is_all_wildcards(self) -> bool:
        return all(getattr(self, name) == WILDCARD for name in _FIELD_KEYS)

    def matches(self, message: Message) -> bool:
        return (
            _domain_matches(self.origin_domain, message.origin_domain)
            and _address_matches(self.sender_address, message.sender)
            and _domain_matches(self.destination_domain, message.destination_domain)
            and _address_matches(self.recipient_address, message.recipient)
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name, key in _FIELD_KEYS.items():
            value = getattr(self, name)
            result[key] = list(value) if isinstance(value, tuple) else value
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MatchingListElement":
        unknown = set(data) - set(_KEY_FIELDS)
        if unknown:
            raise ConfigurationError(
                f"Unknown matching list keys: {', '.join(sorted(unknown))}"
            )
        return cls(**{_KEY_FIELDS[key]: value for key, value in data.items()})


MatchingList = Tuple[MatchingListElement, ...]

ALL_WILDCARDS_ELEMENT = MatchingListElement()

MATCHING_LIST_ALL_WILDCARDS: MatchingList = (ALL_WILDCARDS_ELEMENT,)


def matching_list_matches(matching_list: Sequence[MatchingListElement], message: Message) -> bool:
    """True if any element of the list matches the message."""
    return any(element.matches(message) for element in matching_list)


def router_matching_list(routers: Mapping[str, str]) -> MatchingList:
    """
    Build a list allowing traffic between every ordered pair of routers.

    Produces one element per (origin, destination) pair with
    origin != destination, origin-major in the iteration order of `routers`.
    For n chains the result has exactly n * (n - 1) elements.
    """
    chains = list(routers)
    elements: List[MatchingListElement] = []
    for origin in chains:
        for destination in chains:
            if origin == destination:
                continue
            elements.append(MatchingListElement(
                origin_domain=domain_id(origin),
                sender_address=routers[origin],
                destination_domain=domain_id(destination),
                recipient_address=routers[destination],
            ))
    logger.debug(
        "Built router matching list",
        operation="router_matching_list",
        chains=chains,
        elements=len(elements),
    )
    return tuple(elements)


def context_router_matching_list(
    router_sets: Mapping[str, Mapping[str, str]],
    context: str,
) -> MatchingList:
    """Router matching list for the router set deployed for `context`."""
    routers = router_sets.get(context)
    if routers is None:
        raise ConfigurationError(
            f"No router set found for context {context}", context=context
        )
    return router_matching_list(routers)


def serialize_matching_list(matching_list: Iterable[MatchingListElement]) -> str:
    """Compact JSON encoding understood by the relayer."""
    return json.dumps(
        [element.to_dict() for element in matching_list],
        separators=(",", ":"),
    )


def parse_matching_list(value: Union[str, Sequence[Mapping[str, Any]]]) -> MatchingList:
    """Parse a serialized matching list or a sequence of element mappings."""
    items = json.loads(value) if isinstance(value, str) else value
    if not isinstance(items, (list, tuple)):
        raise ConfigurationError("Matching list must be a sequence of elements")
    return tuple(MatchingListElement.from_dict(item) for item in items)
