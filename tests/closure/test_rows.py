from modules.closure.models import BonkRecord, ClosureKind, ManualClosing, SynthesizedClosing
from modules.closure.parser import ParseOptions
from modules.closure.rows import (
    BONKER_COLUMNS,
    bonk_fields,
    bonk_fields_from_row,
    bonked_columns,
    build_row,
)
from modules.common.tickets import TicketRef

REF = TicketRef(
    channel_id=1,
    name="ticket-0042",
    number=42,
    key_column="#",
    key_value="42",
    proposal="42",
)
LINK = "https://oracle.uma.xyz/?transactionHash=0xabc&eventIndex=2"


def _record(**overrides):
    values = dict(
        kind=ClosureKind.STANDARD,
        closer="Zed",
        primary="Alice",
        secondary="Bob",
        bonks=(
            BonkRecord(bonker="Carl", victims=("Dave", "Erin"), category="primary"),
            BonkRecord(bonker="Fay", victims=("Gus",), category="tertiary"),
        ),
        findoor="Hank",
    )
    values.update(overrides)
    return ManualClosing(**values)


def test_flat_row_shape_and_values():
    options = ParseOptions()
    record = _record(bonks=(BonkRecord("Carl", ("Dave", "Erin")), BonkRecord("Fay", ("Gus",))))
    row = build_row(REF, record, link=LINK, recorder="mod", options=options)
    assert row["#"] == "42"
    assert row["Proposal"] == "42"
    assert row["OO Link"] == LINK
    assert row["Primary"] == "Alice"
    assert row["Tertiary"] == ""
    assert row["Recorder"] == "mod"
    assert row["Findoor"] == "Hank"
    assert row["Type (PM / Snap, etc)"] == ""
    assert row["bonker 1"] == "Carl" and row["BONKED 1"] == "Dave, Erin"
    assert row["bonker 2"] == "Fay" and row["BONKED 2"] == "Gus"
    assert row["bonker 5"] == "" and row["BONKED 5"] == ""
    assert all(isinstance(value, str) for value in row.values())


def test_categorized_row_buckets_by_category():
    options = ParseOptions(layout="categorized", quaternary=True)
    row = build_row(REF, _record(), link=LINK, recorder="mod", options=options)
    assert bonked_columns(options) == ("BONKED 1", "BONKED 2", "BONKED 3", "BONKED 4")
    assert row["BONKED 1"] == "Dave, Erin"
    assert row["BONKED 2"] == ""
    assert row["BONKED 3"] == "Gus"
    assert row["BONKED 4"] == ""
    assert "BONKED 5" not in row


def test_bonk_fields_round_trip_through_row():
    for options in (ParseOptions(), ParseOptions(layout="categorized")):
        record = _record()
        if not options.categorized:
            record = _record(bonks=(BonkRecord("Carl", ("Dave", "Erin")), BonkRecord("Fay", ("Gus",))))
        row = build_row(REF, record, link=LINK, recorder="mod", options=options)
        assert bonk_fields_from_row(row, options) == bonk_fields(record, options)


def test_non_standard_kind_clears_participants_and_sets_type():
    record = ManualClosing(kind=ClosureKind.DISPUTED, closer="Zed", primary="Alice", disputed=True)
    row = build_row(REF, record, link=LINK, recorder="mod", options=ParseOptions())
    assert (row["Primary"], row["Secondary"], row["Tertiary"]) == ("", "", "")
    assert row["Disputed? (y?)"] == "y"
    assert row["Type (PM / Snap, etc)"] == "Disputed"
    assert row["Closer"] == "Zed"


def test_synthesized_record_has_blank_overrides():
    record = SynthesizedClosing(closer="Bea", primary="Bea", verifiers=("Bea",))
    row = build_row(REF, record, link=LINK, recorder="bot", options=ParseOptions())
    assert row["Alertoor"] == "" and row["Findoor"] == ""
    assert [row[col] for col in BONKER_COLUMNS] == ["", "", "", "", ""]


def test_thread_ticket_keyed_by_link():
    ref = TicketRef(
        channel_id=2, name="market thread", number=None, key_column="OO Link", key_value=LINK, proposal="market thread"
    )
    row = build_row(ref, _record(), link=LINK, recorder="mod", options=ParseOptions())
    assert row["#"] == ""
    assert row["OO Link"] == LINK
    assert row["Proposal"] == "market thread"
