"""Shared test fixtures for the transcript_refiner test suite.

WHY: Parser, batching, session, API, and CLI tests all need the same
small transcripts and a provider that answers deterministically without
network access. Centralizing them here avoids duplication.

HOW: Pytest fixtures provide a short two-speaker transcript, its
subtitle and plain-text encodings, a factory for long numbered
transcripts, and a factory for FakeProvider, an in-process stand-in
for the HTTP providers that reads the batch out of each prompt and
answers with scripted or echoed JSON.

RULES:
- FakeProvider never touches the network
- Unscripted batches are echoed back with " (edited)" appended to each text
- Fixtures return fresh objects on every call
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Callable, Dict, List, Optional

import pytest

from transcript_refiner.core.ir import Segment


# ---------------------------------------------------------------------------
# Sample transcript
# ---------------------------------------------------------------------------

SAMPLE_SUBTITLE = (
    "1\n"
    "00:00:00,000 --> 00:00:02,500\n"
    "[講者 A] 大家好，歡迎收聽本集節目。\n"
    "\n"
    "2\n"
    "00:00:02,500 --> 00:00:05,120\n"
    "[講者 B] 謝謝邀請，很高興來到這裡。\n"
    "\n"
    "3\n"
    "00:00:05,120 --> 00:00:09,999\n"
    "[講者 A] 我們今天聊聊語音轉錄。\n"
)

SAMPLE_PLAIN_TEXT = (
    "[講者 A] 大家好，歡迎收聽本集節目。\n"
    "\n"
    "[講者 B] 謝謝邀請，很高興來到這裡。\n"
    "\n"
    "[講者 A] 我們今天聊聊語音轉錄。"
)


@pytest.fixture
def sample_segments() -> List[Segment]:
    """Three segments, two speakers, matching SAMPLE_SUBTITLE."""
    return [
        Segment(id=1, speaker="講者 A", start=0.0, end=2.5, text="大家好，歡迎收聽本集節目。"),
        Segment(id=2, speaker="講者 B", start=2.5, end=5.12, text="謝謝邀請，很高興來到這裡。"),
        Segment(id=3, speaker="講者 A", start=5.12, end=9.999, text="我們今天聊聊語音轉錄。"),
    ]


@pytest.fixture
def sample_subtitle() -> str:
    return SAMPLE_SUBTITLE


@pytest.fixture
def sample_plain_text() -> str:
    return SAMPLE_PLAIN_TEXT


def _numbered_segments(count: int) -> List[Segment]:
    return [
        Segment(
            id=n,
            speaker="Speaker {}".format(1 + n % 2),
            start=float(n - 1) * 2,
            end=float(n - 1) * 2 + 1.5,
            text="line {}".format(n),
        )
        for n in range(1, count + 1)
    ]


@pytest.fixture
def make_segments() -> Callable[[int], List[Segment]]:
    """Factory for a transcript of ``count`` segments with texts 'line N'."""
    return _numbered_segments


# ---------------------------------------------------------------------------
# Fake provider
# ---------------------------------------------------------------------------

_BATCH_RE = re.compile(r"This is batch (\d+) of (\d+)\.")
_EXCERPT_MARKER = "Transcript excerpt to edit:\n"
_REPLY_MARKER = "\n\nReply with"


def prompt_batch_number(prompt: str) -> int:
    return int(_BATCH_RE.search(prompt).group(1))


def prompt_excerpt(prompt: str) -> List[dict]:
    """The segment records a prompt asks the provider to edit."""
    body = prompt.split(_EXCERPT_MARKER, 1)[1]
    return json.loads(body.split(_REPLY_MARKER, 1)[0])


class FakeProvider:
    """Deterministic provider stand-in with the ``submit`` capability.

    Args:
        responses: batch number (1-based) -> raw response text.
        errors: batch number -> exception raised instead of answering.
        delays: batch number -> seconds to sleep before answering.
        gate: optional event every submit waits on before answering.
        on_submit: optional callback receiving each batch number.
    """

    name = "fake"
    model = "fake-1"

    def __init__(
        self,
        responses: Optional[Dict[int, str]] = None,
        errors: Optional[Dict[int, BaseException]] = None,
        delays: Optional[Dict[int, float]] = None,
        gate: Optional[asyncio.Event] = None,
        on_submit: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.responses = responses or {}
        self.errors = errors or {}
        self.delays = delays or {}
        self.gate = gate
        self.on_submit = on_submit
        self.prompts: List[str] = []
        self.entered = False

    async def __aenter__(self) -> FakeProvider:
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.entered = False

    async def submit(self, prompt: str) -> str:
        self.prompts.append(prompt)
        number = prompt_batch_number(prompt)
        if self.on_submit:
            self.on_submit(number)
        if self.gate is not None:
            await self.gate.wait()
        if number in self.delays:
            await asyncio.sleep(self.delays[number])
        if number in self.errors:
            raise self.errors[number]
        if number in self.responses:
            return self.responses[number]

        records = prompt_excerpt(prompt)
        for record in records:
            record["text"] = record["text"] + " (edited)"
        payload = {"transcript": records, "changes": "batch {} edited".format(number)}
        return "```json\n{}\n```".format(json.dumps(payload, ensure_ascii=False))


@pytest.fixture
def fake_provider() -> Callable[..., FakeProvider]:
    """Factory for FakeProvider instances."""
    return FakeProvider
