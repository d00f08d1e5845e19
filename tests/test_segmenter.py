from __future__ import annotations

from types import SimpleNamespace

import pytest

from shortsmith.exceptions import ExternalServiceError
from shortsmith.services.segmenter import (
    OpenAISegmentationClient,
    TextSegmenter,
    create_segmenter,
    parse_segments,
)
from shortsmith.utils.text import split_script


class ScriptedClient:
    def __init__(self, *replies) -> None:  # noqa: ANN002
        self.replies = list(replies)
        self.calls = 0

    def segment_text(self, text: str, max_len: int) -> list[str]:
        self.calls += 1
        reply = self.replies.pop(0) if self.replies else RuntimeError("down")
        if isinstance(reply, Exception):
            raise reply
        return reply


def test_failing_client_retries_then_falls_back_to_rules() -> None:
    client = ScriptedClient()
    sleeps: list[float] = []
    segmenter = TextSegmenter(client=client, max_retries=3, retry_delay=5.0, sleep=sleeps.append)

    lines = segmenter.segment("This is a test", 6)

    assert client.calls == 4
    assert sleeps == [5.0, 5.0, 5.0]
    assert lines == split_script("This is a test", 6)


def test_empty_reply_counts_as_failure() -> None:
    client = ScriptedClient([], ["用Python寫code"])
    sleeps: list[float] = []
    segmenter = TextSegmenter(client=client, max_retries=3, retry_delay=1.0, sleep=sleeps.append)

    assert segmenter.segment("用Python寫code", 16) == ["用 Python 寫 code"]
    assert client.calls == 2
    assert sleeps == [1.0]


def test_without_client_uses_rules() -> None:
    segmenter = TextSegmenter(client=None)
    assert segmenter.segment("外資預估2026年營收將年增35％。", 16) == ["外資預估 2026 年營收將年增", "35％"]


def test_create_segmenter_without_key_uses_rules(settings) -> None:
    segmenter = create_segmenter(settings)
    assert segmenter.client is None
    assert segmenter.retry_delay == 0.0


def test_parse_segments_drops_blanks() -> None:
    assert parse_segments("第一行|||第二行||| |||third\n") == ["第一行", "第二行", "third"]
    assert parse_segments("") == []


def _openai_client(create) -> OpenAISegmentationClient:  # noqa: ANN001
    client = OpenAISegmentationClient("sk-test", model="test-model")
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))  # noqa: SLF001
    return client


def test_openai_client_parses_separated_reply() -> None:
    seen = {}

    def create(**kwargs):  # noqa: ANN003
        seen.update(kwargs)
        message = SimpleNamespace(content="甚至有網友笑說|||已經發展出獨特的社群文化")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    segments = _openai_client(create).segment_text("text", 16)

    assert segments == ["甚至有網友笑說", "已經發展出獨特的社群文化"]
    assert seen["model"] == "test-model"
    assert "Max characters per segment: 16" in seen["messages"][1]["content"]


def test_openai_client_wraps_errors() -> None:
    def create(**kwargs):  # noqa: ANN003
        raise RuntimeError("rate limited")

    with pytest.raises(ExternalServiceError) as excinfo:
        _openai_client(create).segment_text("text", 16)
    assert excinfo.value.service == "openai"
    assert excinfo.value.exit_code == 5


def test_openai_client_rejects_empty_reply() -> None:
    def create(**kwargs):  # noqa: ANN003
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="  "))])

    with pytest.raises(ExternalServiceError):
        _openai_client(create).segment_text("text", 16)
