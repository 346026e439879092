"""Fixed column mapping between closure records and sheet rows."""

from __future__ import annotations

from typing import Mapping

from modules.closure.models import MAX_BONKERS, ClosingRecord, ManualClosing
from modules.closure.parser import ParseOptions
from modules.common.tickets import LINK_COLUMN, ORDER_COLUMN, PROPOSAL_COLUMN, TicketRef

TYPE_COLUMN = "Type (PM / Snap, etc)"
DISPUTED_COLUMN = "Disputed? (y?)"
PARTICIPANT_COLUMNS = ("Primary", "Secondary", "Tertiary")
BONKER_COLUMNS = tuple(f"bonker {i}" for i in range(1, MAX_BONKERS + 1))

BonkFields = tuple[tuple[str, ...], tuple[str, ...]]


def bonked_columns(options: ParseOptions) -> tuple[str, ...]:
    count = len(options.categories) if options.categorized else MAX_BONKERS
    return tuple(f"BONKED {i}" for i in range(1, count + 1))


def _pad(values: list[str], size: int) -> tuple[str, ...]:
    return tuple((values + [""] * size)[:size])


def bonk_fields(record: ClosingRecord, options: ParseOptions) -> BonkFields:
    """Return ``(bonker cells, BONKED cells)`` for ``record``."""

    bonkers = list(record.bonkers)
    if options.categorized:
        buckets: list[list[str]] = [[] for _ in options.categories]
        for bonk in record.bonks:
            if bonk.category not in options.categories:
                continue
            bucket = buckets[options.categories.index(bonk.category)]
            for victim in bonk.victims:
                if victim not in bucket:
                    bucket.append(victim)
        cells = [", ".join(bucket) for bucket in buckets]
    else:
        cells = []
        for bonker in bonkers:
            victims: list[str] = []
            for bonk in record.bonks:
                if bonk.bonker != bonker:
                    continue
                victims.extend(v for v in bonk.victims if v not in victims)
            cells.append(", ".join(victims))
    return _pad(bonkers, MAX_BONKERS), _pad(cells, len(bonked_columns(options)))


def bonk_fields_from_row(row: Mapping[str, str], options: ParseOptions) -> BonkFields:
    """Read the bonk cells of a stored row back into :func:`bonk_fields` shape."""

    bonkers = tuple(str(row.get(col, "") or "").strip() for col in BONKER_COLUMNS)
    cells = tuple(str(row.get(col, "") or "").strip() for col in bonked_columns(options))
    return bonkers, cells


def type_label(record: ClosingRecord) -> str:
    if isinstance(record, ManualClosing) and record.type_label:
        return record.type_label
    return record.kind.type_label


def build_row(
    ref: TicketRef,
    record: ClosingRecord,
    *,
    link: str,
    recorder: str,
    options: ParseOptions,
) -> dict[str, str]:
    """Return the flat column → string payload for one ticket."""

    participants = ("", "", "") if record.kind.clears_participants else record.participants
    row: dict[str, str] = {
        ORDER_COLUMN: str(ref.number) if ref.number is not None else "",
        PROPOSAL_COLUMN: ref.proposal,
        TYPE_COLUMN: type_label(record),
        LINK_COLUMN: link,
        "Closer": record.closer,
        "Recorder": recorder,
        DISPUTED_COLUMN: "y" if record.disputed else "",
        "Alertoor": record.alertoor if isinstance(record, ManualClosing) else "",
        "Findoor": record.findoor if isinstance(record, ManualClosing) else "",
    }
    row.update(zip(PARTICIPANT_COLUMNS, participants))
    bonkers, cells = bonk_fields(record, options)
    row.update(zip(BONKER_COLUMNS, bonkers))
    row.update(zip(bonked_columns(options), cells))
    row[ref.key_column] = ref.key_value
    return row


__all__ = [
    "BONKER_COLUMNS",
    "DISPUTED_COLUMN",
    "PARTICIPANT_COLUMNS",
    "TYPE_COLUMN",
    "bonk_fields",
    "bonk_fields_from_row",
    "bonked_columns",
    "build_row",
    "type_label",
]
