"""Pytest configuration for shared test fixtures."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Sequence

import pytest


def _ensure_project_root_on_path(source_file: Path) -> None:
    """Add the repository root to ``sys.path`` when running from subpackages."""

    for candidate in [source_file.parent, *source_file.parents]:
        shared_dir = candidate / "shared"
        if shared_dir.is_dir():
            project_root = str(candidate)
            if project_root not in sys.path:
                sys.path.insert(0, project_root)
            break


_ensure_project_root_on_path(Path(__file__).resolve())

from shared.testing.environment import apply_required_test_environment

apply_required_test_environment()

import discord  # noqa: E402

TICKET_TOOL_ID = 557628352828014614
BOT_ID = 999


class FakeChannel:
    """Ticket container stub: newest-first ``history`` and recorded sends."""

    def __init__(
        self,
        *,
        channel_id: int = 1001,
        name: str = "ticket-0042",
        messages: Sequence[Any] = (),
        channel_type: Any = discord.ChannelType.text,
        created_at: datetime | None = None,
        fail_on: Sequence[str] = (),
    ) -> None:
        self.id = channel_id
        self.name = name
        self.type = channel_type
        self.archived = False
        self.created_at = created_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._messages = list(messages)
        self._fail_on = tuple(fail_on)
        self.sent: list[str] = []

    async def history(self, *, limit: int = 100):
        for message in list(reversed(self._messages))[:limit]:
            yield message

    async def send(self, content: str):
        if content in self._fail_on:
            raise discord.HTTPException(SimpleNamespace(status=500, reason="boom"), "send failed")
        self.sent.append(content)
        return SimpleNamespace(id=len(self.sent), content=content)


def _message(
    content: str = "",
    *,
    author_id: int = 1,
    name: str = "alice",
    bot: bool = False,
    embeds: Sequence[Any] = (),
    channel_id: int = 0,
    message_id: int = 0,
) -> SimpleNamespace:
    author = SimpleNamespace(id=author_id, name=name, display_name=name, bot=bot)
    return SimpleNamespace(
        id=message_id,
        content=content,
        author=author,
        embeds=list(embeds),
        channel=SimpleNamespace(id=channel_id),
    )


def _embed(*, title: str = "", description: str = "", url: str | None = None, fields: Sequence[str] = ()):
    return SimpleNamespace(
        title=title,
        description=description,
        url=url,
        fields=[SimpleNamespace(name="", value=value) for value in fields],
    )


@pytest.fixture
def make_message():
    """Factory for message stubs (chronological lists are passed to channels)."""

    return _message


@pytest.fixture
def make_embed():
    return _embed


@pytest.fixture
def make_channel():
    return FakeChannel


@pytest.fixture
def ticket_tool_id() -> int:
    return TICKET_TOOL_ID


@pytest.fixture
def bot_id() -> int:
    return BOT_ID
