import pytest

from modules.closure.models import BonkRecord, ClosureKind
from modules.closure.parser import (
    ParseOptions,
    find_closing_message,
    parse_bonk_line,
    parse_closing_block,
)
from shared.identity import parse_identity_map

EMPTY = parse_identity_map({"version": 1, "verifiers": {}})
CATEGORIZED = ParseOptions(layout="categorized")


def _parse(content, *, options=None, identities=EMPTY, author_id=10, author_name="closer"):
    return parse_closing_block(
        content,
        author_id=author_id,
        author_name=author_name,
        identities=identities,
        options=options,
    )


def test_three_names_map_to_participants_capitalized():
    record = _parse("CLOSING: alice, bob. carl")
    assert record.participants == ("Alice", "Bob", "Carl")
    assert record.kind is ClosureKind.STANDARD
    assert record.is_valid
    assert record.closer == "closer"


def test_standard_keyword_is_read_as_a_name():
    record = _parse("CLOSING: standard")
    assert record.kind is ClosureKind.STANDARD
    assert record.participants == ("Standard", "", "")
    assert ClosureKind.from_keyword("standard") is None
    assert ClosureKind.from_keyword(" Snapshot ") is ClosureKind.SNAPSHOT


def test_four_names_produce_exactly_one_error():
    record = _parse("CLOSING: a, b, c, d")
    assert record.errors == ('"CLOSING:" max 3 users. Found: 4.',)
    assert not record.is_valid
    assert record.participants == ("A", "B", "C")


def test_scenario_flat_bonk_group():
    record = _parse("CLOSING: Alice, Bob\nCarl bonked Dave, Erin primary")
    assert record.participants == ("Alice", "Bob", "")
    assert record.bonks == (BonkRecord(bonker="Carl", victims=("Dave", "Erin")),)


def test_flat_layout_merges_repeated_bonkers():
    record = _parse("CLOSING: a\ncarl bonked dave\nCarl bonked erin secondary\nzed bonked dave")
    assert record.bonks == (
        BonkRecord(bonker="Carl", victims=("Dave", "Erin")),
        BonkRecord(bonker="Zed", victims=("Dave",)),
    )
    assert record.bonkers == ("Carl", "Zed")


def test_categorized_layout_requires_category():
    record = _parse(
        "CLOSING: a\ncarl bonked dave primary\ncarl bonked erin",
        options=CATEGORIZED,
    )
    assert record.bonks == (BonkRecord(bonker="Carl", victims=("Dave",), category="primary"),)


def test_quaternary_category_only_when_enabled():
    line = "carl bonked dave quaternary"
    assert parse_bonk_line(line, CATEGORIZED) is None
    bonk = parse_bonk_line(line, ParseOptions(layout="categorized", quaternary=True))
    assert bonk == BonkRecord(bonker="Carl", victims=("Dave",), category="quaternary")


@pytest.mark.parametrize(
    "keyword, kind",
    [
        ("assertion", ClosureKind.ASSERTION),
        ("DISPUTED", ClosureKind.DISPUTED),
        ("snapshot", ClosureKind.SNAPSHOT),
        ("Polymarket", ClosureKind.POLYMARKET),
    ],
)
def test_kind_keyword_clears_participants_and_bonks(keyword, kind):
    record = _parse(f"CLOSING: {keyword}\ncarl bonked dave primary\nfindoor: frank")
    assert record.kind is kind
    assert record.participants == ("", "", "")
    assert record.bonks == ()
    assert record.findoor == "Frank"
    assert record.disputed is (kind is ClosureKind.DISPUTED)


def test_overrides_capitalized_except_link():
    record = _parse(
        "CLOSING: a\nlink: https://oracle.uma.xyz/?transactionHash=0xAbC\n"
        "type: pm\nalertoor: gina\nFINDOOR: hank\nrandom chatter"
    )
    assert record.link == "https://oracle.uma.xyz/?transactionHash=0xAbC"
    assert record.type_label == "Pm"
    assert record.alertoor == "Gina"
    assert record.findoor == "Hank"


def test_closer_resolved_through_identity_map():
    identities = parse_identity_map({"version": 1, "verifiers": {"10": "Canonical"}})
    record = _parse("CLOSING: a", identities=identities)
    assert record.closer == "Canonical"


def test_non_closing_content_rejected():
    with pytest.raises(ValueError):
        _parse("hello")


def test_find_closing_message_returns_first_in_given_order(make_message):
    newest_first = [
        make_message("chatter"),
        make_message("closing: newer"),
        make_message("CLOSING: older"),
    ]
    assert find_closing_message(newest_first).content == "closing: newer"
    assert find_closing_message([make_message("nothing")]) is None
