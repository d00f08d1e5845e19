"""
Subtitle segmentation service.

Turns a narration script into display-sized subtitle lines. An LLM does the
segmentation when one is configured; the rule-based splitter in
`shortsmith.utils.text` is the fallback whenever the LLM is absent or keeps
failing.

Design principles:
- Vendor isolation: the LLM is hidden behind `SegmentationClient`.
- Bounded retry: a fixed number of attempts with a fixed delay, then fallback.
- Every returned line goes through `auto_spacing`, whichever path produced it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

from shortsmith.config.settings import Settings
from shortsmith.exceptions import ExternalServiceError
from shortsmith.utils.logging import get_logger
from shortsmith.utils.text import auto_spacing, split_script

log = get_logger(__name__)

SEPARATOR = "|||"

SYSTEM_PROMPT = "You are a professional video subtitle editor."

SEGMENT_PROMPT = """\
Segment the provided text into natural, semantically complete subtitle lines.

Target audience: the video is likely in Chinese or English.
Constraints:
1. Max characters per segment: {max_len}.
2. Separator: use "|||" to separate distinct time-based segments.
3. No line breaks: do NOT use "\\n" or any other line break characters within a segment.
4. Remove punctuation: remove all punctuation marks (e.g. ，。？！「」".,?!) from the output. The output should contain ONLY text.
5. Merge aggressively: ignore original punctuation for segmentation. If multiple short phrases fit within the max character limit, merge them into a single line. Do NOT split just because there was a comma in the original text.
6. Output format: pure text with separators. No markdown, no explanations.

Examples:

Input:
甚至有網友笑說台灣人對Threads的熱情已經發展出獨特的社群文化，「台灣人用Threads已經到上廁所求救沒衛生紙、吃便當沒筷子都會有人送過去的程度」 (Max: 16)

Output:
甚至有網友笑說台灣人對Threads的熱情|||已經發展出獨特的社群文化|||台灣人用Threads已經到上廁所求救|||沒衛生紙吃便當沒筷子都會有人送過去的程度

Input:
Welcome to the video. Today, we are going to talk about artificial intelligence. (Max: 50)

Output:
Welcome to the video Today we are going to talk about artificial intelligence

Text to segment:
{text}
"""


# ---------------------------------------------------------------------
# LLM client protocol (keeps OpenAI isolated & mockable)
# ---------------------------------------------------------------------
class SegmentationClient(Protocol):
    def segment_text(self, text: str, max_len: int) -> list[str]: ...


def parse_segments(reply: str) -> list[str]:
    return [seg.strip() for seg in reply.split(SEPARATOR) if seg.strip()]


class OpenAISegmentationClient:
    def __init__(self, api_key: str, *, model: str = "gpt-4o-mini"):
        from openai import OpenAI  # local import (optional dependency)

        self._client = OpenAI(api_key=api_key)
        self.model = model

    def segment_text(self, text: str, max_len: int) -> list[str]:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": SEGMENT_PROMPT.format(max_len=max_len, text=text)},
                ],
                temperature=0.2,
            )
        except Exception as exc:
            raise ExternalServiceError(f"AI segmentation request failed: {exc}", service="openai") from exc

        content = response.choices[0].message.content if response.choices else None
        segments = parse_segments(content or "")
        if not segments:
            raise ExternalServiceError("AI segmentation returned no segments.", service="openai")
        return segments


# ---------------------------------------------------------------------
# Segmenter
# ---------------------------------------------------------------------
@dataclass
class TextSegmenter:
    client: SegmentationClient | None = None
    max_retries: int = 3
    retry_delay: float = 5.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def segment(self, script: str, max_len: int) -> list[str]:
        lines = self._segment_with_client(script, max_len) if self.client is not None else None
        if lines is None:
            lines = split_script(script, max_len)
            log.info("Rule-based segmentation produced %d line(s)", len(lines))
        return [auto_spacing(line) for line in lines]

    def _segment_with_client(self, script: str, max_len: int) -> list[str] | None:
        attempts = max(self.max_retries, 0) + 1
        for attempt in range(1, attempts + 1):
            try:
                lines = self.client.segment_text(script, max_len)
                if lines:
                    log.info("AI segmentation produced %d line(s) (attempt %d)", len(lines), attempt)
                    return lines
                log.warning("AI segmentation returned no lines (attempt %d/%d)", attempt, attempts)
            except Exception as exc:
                log.warning("AI segmentation failed (attempt %d/%d): %s", attempt, attempts, exc)
            if attempt < attempts:
                self.sleep(self.retry_delay)
        log.warning("AI segmentation exhausted %d attempt(s); using rule-based splitter", attempts)
        return None


def create_segmenter(settings: Settings) -> TextSegmenter:
    """
    Factory: use the OpenAI client when an API key is configured.
    """
    client: SegmentationClient | None = None
    if settings.openai_api_key:
        client = OpenAISegmentationClient(settings.openai_api_key, model=settings.ai_model)
        log.info("Segmentation backend: openai model=%s", settings.ai_model)
    else:
        log.info("Segmentation backend: rules (no OpenAI key)")
    return TextSegmenter(
        client=client,
        max_retries=settings.ai_max_retries,
        retry_delay=settings.ai_retry_delay_seconds,
    )
