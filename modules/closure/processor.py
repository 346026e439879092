"""Per-ticket processing pass: discover, resolve, validate, persist, report."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

import discord
from gspread.exceptions import APIError
from requests.exceptions import RequestException

from modules.closure.auto_close import (
    AutoCloseUnavailable,
    author_display_name,
    mentions_bonk,
    synthesize_closing,
)
from modules.closure.links import find_link_in_messages
from modules.closure.models import ClosingRecord, ClosureKind, ManualClosing, override_closing
from modules.closure.parser import ParseOptions, find_closing_message, parse_closing_block
from modules.closure.rows import bonk_fields, build_row, type_label
from modules.closure.settings import SettingsStore
from modules.common.tickets import is_thread, parse_ticket_number, ticket_ref
from shared import config as shared_config
from shared.identity import VerifierIdentityMap
from shared.logging import set_trace_id
from shared.sheets import closures
from shared.sheets.core import SheetsError

log = logging.getLogger("closeout.closure.processor")

SUMMARY_PREFIX = "ticket data for order"
FLAG_PREFIX = "flag:"

UpsertFn = Callable[..., Awaitable[str]]


@dataclass(frozen=True)
class ProcessingOutcome:
    status: str
    reason: str = ""
    action: str = ""

    @property
    def reported(self) -> bool:
        return self.status == "reported"


def _content(message: Any) -> str:
    return (getattr(message, "content", "") or "").strip()


def _is_bot(message: Any) -> bool:
    return bool(getattr(getattr(message, "author", None), "bot", False))


def _has_flag(messages: Sequence[Any], *, humans_only: bool) -> bool:
    for message in messages:
        if humans_only and _is_bot(message):
            continue
        if _content(message).lower().startswith(FLAG_PREFIX):
            return True
    return False


def _has_summary(messages: Sequence[Any]) -> bool:
    return any(
        _is_bot(message) and _content(message).lower().startswith(SUMMARY_PREFIX)
        for message in messages
    )


class TicketProcessor:
    """Runs one processing pass over a ticket container.

    The pass never raises: every terminal state is reported in the channel
    and returned as a :class:`ProcessingOutcome`.
    """

    def __init__(
        self,
        *,
        settings: SettingsStore,
        identities: VerifierIdentityMap,
        bot: Any = None,
        upsert: UpsertFn | None = None,
        options: ParseOptions | None = None,
        prefixes: Sequence[str] | None = None,
        ticket_tool_id: Optional[int] = None,
        verification_tokens: Sequence[str] | None = None,
        message_window: int | None = None,
        sheets_timeout: float | None = None,
    ) -> None:
        self.settings = settings
        self.identities = identities
        self.bot = bot
        self._upsert = upsert or closures.aupsert_closure
        self.options = options or ParseOptions(
            layout=shared_config.get_bonk_layout(),
            quaternary=shared_config.get_quaternary_bonks_enabled(),
        )
        self.prefixes = tuple(prefixes or shared_config.get_ticket_name_prefixes())
        self.ticket_tool_id = (
            ticket_tool_id if ticket_tool_id is not None else shared_config.get_ticket_tool_bot_id()
        )
        self.verification_tokens = tuple(
            verification_tokens or shared_config.get_verification_tokens()
        )
        self.message_window = message_window or shared_config.get_message_window()
        self.sheets_timeout = (
            sheets_timeout if sheets_timeout is not None else shared_config.get_sheets_timeout_sec()
        )

    # ------------------------------------------------------------------ helpers
    @property
    def _bot_user_id(self) -> Optional[int]:
        user = getattr(self.bot, "user", None)
        value = getattr(user, "id", None)
        return int(value) if value is not None else None

    def _bot_name(self) -> str:
        user = getattr(self.bot, "user", None)
        return getattr(user, "name", None) or shared_config.get_bot_name()

    def _ping(self) -> str:
        return self.settings.current.error_ping

    async def _report(self, channel: Any, text: str, log_prefix: str) -> bool:
        try:
            await channel.send(text)
        except discord.HTTPException:
            log.exception("%s failed to send report", log_prefix)
            return False
        return True

    async def _fetch_history(self, channel: Any) -> list[Any]:
        return [message async for message in channel.history(limit=self.message_window)]

    # --------------------------------------------------------------- public API
    async def process(
        self,
        channel: Any,
        *,
        initiated_by: str,
        automatic: bool,
        override_kind: ClosureKind | None = None,
    ) -> ProcessingOutcome:
        trace_id = set_trace_id()
        name = getattr(channel, "name", "") or ""
        log_prefix = f"[{getattr(channel, 'id', '?')} | {name}]"

        number = parse_ticket_number(name, self.prefixes)
        if number is None and not is_thread(channel):
            log.warning('%s could not extract a ticket number from "%s"', log_prefix, name)
            await self._report(
                channel,
                f'Error: Could not read a ticket number from channel name "{name}".',
                log_prefix,
            )
            return ProcessingOutcome("error", "invalid_ticket_id")

        order_label = f"#{number}" if number is not None else name
        log.info(
            "%s processing Order %s (initiated by %s, kind=%s)",
            log_prefix,
            order_label,
            initiated_by,
            override_kind.value if override_kind else "auto",
            extra={"trace": trace_id, "automatic": automatic},
        )
        try:
            return await self._process(
                channel,
                initiated_by=initiated_by,
                automatic=automatic,
                override_kind=override_kind,
                log_prefix=log_prefix,
                order_label=order_label,
            )
        except Exception:
            log.exception("%s major processing error", log_prefix)
            await self._report(
                channel,
                f"Flag: Major processing error for Order {order_label}. Check logs.{self._ping()}",
                log_prefix,
            )
            return ProcessingOutcome("error", "unknown_error")

    async def _process(
        self,
        channel: Any,
        *,
        initiated_by: str,
        automatic: bool,
        override_kind: ClosureKind | None,
        log_prefix: str,
        order_label: str,
    ) -> ProcessingOutcome:
        messages = await self._fetch_history(channel)
        settings = self.settings.current

        if automatic:
            if _has_flag(messages, humans_only=False):
                log.info("%s found Flag: message. Skipping.", log_prefix)
                return ProcessingOutcome("skipped", "flagged_explicitly")
            if _has_summary(messages):
                if settings.post_action == "delete" and shared_config.get_delete_command_text():
                    await self._report(channel, shared_config.get_delete_command_text(), log_prefix)
                    log.info("%s already recorded; delete directive re-issued", log_prefix)
                    return ProcessingOutcome("skipped", "delete_reissued")
                log.info("%s already recorded. Skipping.", log_prefix)
                return ProcessingOutcome("skipped", "already_processed")
        elif _has_flag(messages, humans_only=True):
            log.info("%s flagged by a participant. Skipping.", log_prefix)
            return ProcessingOutcome("skipped", "flagged_manually")

        manual: ManualClosing | None = None
        if override_kind is None:
            closing_message = find_closing_message(messages)
            if closing_message is not None:
                log.info("%s CLOSING: block by %s", log_prefix, author_display_name(closing_message))
                manual = parse_closing_block(
                    closing_message.content,
                    author_id=getattr(closing_message.author, "id", None),
                    author_name=author_display_name(closing_message),
                    identities=self.identities,
                    options=self.options,
                    log_prefix=log_prefix,
                )

        link = find_link_in_messages(messages)
        if not link and manual is not None and manual.link:
            link = manual.link
            log.info("%s using link from CLOSING block", log_prefix)
        if not link:
            await self._report(
                channel, f"Flag: OO Link not found. Manual review needed.{self._ping()}", log_prefix
            )
            return ProcessingOutcome("flagged", "link_not_found")
        log.info("%s OO Link: %s", log_prefix, link)

        ref = ticket_ref(channel, self.prefixes, link=link)
        if ref is None:
            await self._report(
                channel,
                f'Error: Could not read a ticket number from channel name "{channel.name}".',
                log_prefix,
            )
            return ProcessingOutcome("error", "invalid_ticket_id")

        record: ClosingRecord
        if override_kind is not None:
            record = override_closing(override_kind, initiated_by)
        elif manual is not None:
            record = manual
        elif mentions_bonk(messages, bot_user_id=self._bot_user_id):
            await self._report(
                channel,
                f'Flag: bonk mentioned but no "CLOSING:" block found. Manual review needed.{self._ping()}',
                log_prefix,
            )
            return ProcessingOutcome("flagged", "bonk_without_closing")
        else:
            try:
                record = synthesize_closing(
                    list(reversed(messages)),
                    ticket_tool_id=self.ticket_tool_id,
                    identities=self.identities,
                    verification_tokens=self.verification_tokens,
                    log_prefix=log_prefix,
                )
            except AutoCloseUnavailable as exc:
                log.info("%s cannot auto-close: %s", log_prefix, exc.reason)
                await self._report(
                    channel,
                    f'Flag: "CLOSING:" message not found and ticket cannot be auto-closed '
                    f"({exc.detail}). Manual review needed.{self._ping()}",
                    log_prefix,
                )
                return ProcessingOutcome("flagged", "cannot_auto_close")

        if isinstance(record, ManualClosing) and not record.is_valid:
            log.error("%s validation errors in CLOSING: %s", log_prefix, "; ".join(record.errors))
            bullets = "\n- ".join(record.errors)
            await self._report(
                channel,
                f"Error(s) in CLOSING block (data not saved):\n- {bullets}{self._ping()}"
                "\n\nPlease correct and re-run or wait for scan.",
                log_prefix,
            )
            return ProcessingOutcome("error", "validation_error")

        recorder = self._bot_name() if automatic else initiated_by
        row = build_row(ref, record, link=link, recorder=recorder, options=self.options)
        try:
            action = await self._upsert(row, key_column=ref.key_column, timeout=self.sheets_timeout)
        except (SheetsError, APIError, RequestException, asyncio.TimeoutError, ValueError) as exc:
            details = str(exc) or type(exc).__name__
            log.error("%s failed to save Order %s: %s", log_prefix, order_label, details)
            await self._report(
                channel,
                f"Error: Issue saving/updating sheet for Order {order_label}. Details: {details}{self._ping()}",
                log_prefix,
            )
            return ProcessingOutcome("error", "sheets_error")

        log.info("%s data %s", log_prefix, action)
        await self._report(channel, self._summary(ref.label, action, row, record), log_prefix)
        await self._post_action(channel, settings.post_action, log_prefix)
        return ProcessingOutcome("reported", "", action)

    # ---------------------------------------------------------------- reporting
    def _summary(
        self,
        label: str,
        action: str,
        row: Mapping[str, str],
        record: ClosingRecord,
    ) -> str:
        verb = "added" if action == "inserted" else action
        lines = [
            f"Ticket data for Order {label} {verb}!",
            f"**Proposal:** {row.get('Proposal', '')}",
        ]
        label_text = type_label(record)
        if label_text:
            lines.append(f"**Type:** {label_text}")
        lines.append(f"**OO Link:** [here]({row.get('OO Link', '')})")
        if record.disputed:
            lines.append("**Disputed:** y")
        if record.kind.clears_participants:
            return "\n".join(lines)

        primary, secondary, tertiary = record.participants
        lines.append(f"**P/S/T:** {primary or '-'}/{secondary or '-'}/{tertiary or '-'}")
        lines.append(f"**Closer:** {record.closer or '-'}, **Recorder:** {row.get('Recorder', '')}")
        bonkers, cells = bonk_fields(record, self.options)
        lines.append(f"**Bonkers:** {', '.join(b for b in bonkers if b) or 'None'}")
        if self.options.categorized:
            tags = [category[:1].upper() for category in self.options.categories]
            lines.append(
                "**BONKED:** " + " ".join(f"{tag}:[{cell or 'N'}]" for tag, cell in zip(tags, cells))
            )
        else:
            pairs = [f"{bonker} → {cell}" for bonker, cell in zip(bonkers, cells) if bonker]
            lines.append(f"**BONKED:** {'; '.join(pairs) or 'None'}")
        return "\n".join(lines)

    async def _post_action(self, channel: Any, post_action: str, log_prefix: str) -> None:
        if post_action == "none":
            return
        if post_action == "delete":
            command = shared_config.get_delete_command_text()
        else:
            command = shared_config.get_close_command_text()
        if not command:
            log.info("%s no %s command configured", log_prefix, post_action)
            return
        try:
            await channel.send(command)
        except discord.HTTPException:
            log.exception("%s error sending %s command", log_prefix, post_action)
            await self._report(channel, "Saved, but failed to send close cmd.", log_prefix)
            return
        log.info("%s sent: %s", log_prefix, command)


__all__ = ["FLAG_PREFIX", "ProcessingOutcome", "SUMMARY_PREFIX", "TicketProcessor"]
