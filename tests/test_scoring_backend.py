"""Tests for codeshot/services/scoring_backend.py"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from codeshot.core.config import Settings
from codeshot.core.errors import ScoringError
from codeshot.services.scoring_backend import OpenAIScoringBackend

from conftest import ai_payload


def _client(choices: list) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=choices))
    return client


@pytest.mark.asyncio
async def test_backend_requests_json_mode_and_returns_text(settings: Settings) -> None:
    client = _client([SimpleNamespace(message=SimpleNamespace(content=ai_payload(70)))])
    backend = OpenAIScoringBackend(settings, client=client)

    text = await backend.score("File: src/a.py")

    assert text == ai_payload(70)
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == settings.scoring_model
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][-1] == {"role": "user", "content": "File: src/a.py"}


@pytest.mark.asyncio
async def test_backend_without_choices_raises(settings: Settings) -> None:
    backend = OpenAIScoringBackend(settings, client=_client([]))

    with pytest.raises(ScoringError):
        await backend.score("prompt")


@pytest.mark.asyncio
async def test_backend_null_content_is_empty_text(settings: Settings) -> None:
    backend = OpenAIScoringBackend(settings, client=_client([SimpleNamespace(message=SimpleNamespace(content=None))]))

    assert await backend.score("prompt") == ""


@pytest.mark.asyncio
async def test_backend_close_closes_client(settings: Settings) -> None:
    client = _client([])
    client.close = AsyncMock()
    backend = OpenAIScoringBackend(settings, client=client)

    await backend.close()

    client.close.assert_awaited_once()
