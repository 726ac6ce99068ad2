"""
Matching list tests.

Run with: pytest tests/test_matching.py -v
"""

import json

import pytest

from xchain_agents.chains import domain_id
from xchain_agents.errors import ConfigurationError
from xchain_agents.matching import (
    ALL_WILDCARDS_ELEMENT,
    MATCHING_LIST_ALL_WILDCARDS,
    WILDCARD,
    MatchingListElement,
    Message,
    context_router_matching_list,
    matching_list_matches,
    parse_matching_list,
    router_matching_list,
    serialize_matching_list,
)

ROUTERS = {
    "alfajores": "0x1111111111111111111111111111111111111111",
    "fuji": "0x2222222222222222222222222222222222222222",
    "goerli": "0x3333333333333333333333333333333333333333",
}


def _message(origin="alfajores", destination="fuji", sender=None, recipient=None) -> Message:
    return Message(
        origin_domain=domain_id(origin),
        sender=sender or ROUTERS[origin],
        destination_domain=domain_id(destination),
        recipient=recipient or ROUTERS[destination],
    )


class TestMatchingListElement:
    """Single element predicates."""

    def test_all_wildcards_matches_everything(self):
        assert ALL_WILDCARDS_ELEMENT.is_all_wildcards
        assert ALL_WILDCARDS_ELEMENT.matches(_message())
        assert matching_list_matches(MATCHING_LIST_ALL_WILDCARDS, _message("goerli", "alfajores"))

    def test_single_value_fields(self):
        element = MatchingListElement(origin_domain=domain_id("alfajores"))
        assert element.matches(_message("alfajores", "fuji"))
        assert not element.matches(_message("fuji", "alfajores"))

    def test_set_valued_fields(self):
        element = MatchingListElement(destination_domain=[domain_id("fuji"), domain_id("goerli")])
        assert element.destination_domain == (domain_id("fuji"), domain_id("goerli"))
        assert element.matches(_message("alfajores", "goerli"))
        assert not element.matches(_message("fuji", "alfajores"))

    def test_address_comparison_ignores_case_and_padding(self):
        sender = "0xBC3cFeca7Df5A45d61BC60E7898E63670e1654aE"
        padded = "0x000000000000000000000000" + sender[2:].lower()
        element = MatchingListElement(sender_address=sender)
        assert element.matches(_message(sender=padded))
        assert not element.matches(_message())

    def test_to_dict_uses_camel_case_keys(self):
        element = MatchingListElement(origin_domain=1, recipient_address=["0xab", "0xcd"])
        assert element.to_dict() == {
            "originDomain": 1,
            "senderAddress": WILDCARD,
            "destinationDomain": WILDCARD,
            "recipientAddress": ["0xab", "0xcd"],
        }

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigurationError, match="Unknown matching list keys: origin"):
            MatchingListElement.from_dict({"origin": 1})


class TestRouterMatchingList:
    """Pairwise router lists."""

    def test_length_is_n_times_n_minus_one(self):
        for n in range(1, len(ROUTERS) + 1):
            routers = dict(list(ROUTERS.items())[:n])
            assert len(router_matching_list(routers)) == n * (n - 1)

    def test_no_element_routes_to_its_origin(self):
        for element in router_matching_list(ROUTERS):
            assert element.origin_domain != element.destination_domain

    def test_order_is_origin_major(self):
        elements = router_matching_list(ROUTERS)
        pairs = [(e.origin_domain, e.destination_domain) for e in elements]
        a, f, g = domain_id("alfajores"), domain_id("fuji"), domain_id("goerli")
        assert pairs == [(a, f), (a, g), (f, a), (f, g), (g, a), (g, f)]

    def test_elements_carry_router_addresses(self):
        first = router_matching_list(ROUTERS)[0]
        assert first.sender_address == ROUTERS["alfajores"]
        assert first.recipient_address == ROUTERS["fuji"]

    def test_matches_router_traffic_only(self):
        matching_list = router_matching_list(ROUTERS)
        assert matching_list_matches(matching_list, _message("fuji", "goerli"))
        stranger = "0x4444444444444444444444444444444444444444"
        assert not matching_list_matches(matching_list, _message("fuji", "goerli", sender=stranger))

    def test_context_router_set(self):
        router_sets = {"rc": ROUTERS}
        assert len(context_router_matching_list(router_sets, "rc")) == 6
        with pytest.raises(ConfigurationError, match="No router set found for context hyperlane"):
            context_router_matching_list(router_sets, "hyperlane")


class TestSerialization:
    """Transport encoding consumed by the relayer."""

    def test_serialized_form_is_compact_json(self):
        serialized = serialize_matching_list([MatchingListElement(origin_domain=5)])
        assert serialized == (
            '[{"originDomain":5,"senderAddress":"*",'
            '"destinationDomain":"*","recipientAddress":"*"}]'
        )

    def test_set_values_serialize_in_sorted_order(self):
        senders = ["0x" + c * 40 for c in "fedcba9876"]
        expected = sorted(senders)
        for ordering in (set(senders), frozenset(reversed(senders))):
            element = MatchingListElement(sender_address=ordering, origin_domain={13372, 13371})
            assert element.sender_address == tuple(expected)
            assert element.origin_domain == (13371, 13372)
            assert json.loads(serialize_matching_list([element]))[0]["senderAddress"] == expected

    def test_list_values_keep_their_order(self):
        element = MatchingListElement(origin_domain=[5, 1])
        assert element.origin_domain == (5, 1)

    def test_parse_accepts_text_and_items(self):
        matching_list = router_matching_list(ROUTERS)
        serialized = serialize_matching_list(matching_list)
        assert parse_matching_list(serialized) == matching_list
        assert parse_matching_list(json.loads(serialized)) == matching_list

    def test_parse_fills_missing_fields_with_wildcards(self):
        (element,) = parse_matching_list([{"recipientAddress": "0xab"}])
        assert element.origin_domain == WILDCARD
        assert element.recipient_address == "0xab"

    def test_parse_rejects_non_list(self):
        with pytest.raises(ConfigurationError):
            parse_matching_list('{"originDomain": 1}')
