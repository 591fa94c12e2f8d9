"""Transcript Refiner: batch AI editing and versioning for long transcripts.

WHY: AI-generated speech transcripts are long and need free-form fixes
("correct the guest's name", "add punctuation"). Generative text
providers can apply such edits but cannot take a whole transcript at
once and answer in unreliable, semi-structured text.

HOW: Four stages: import (subtitle / plain-text codecs), refine
(batched provider calls through a resilient response parser), version
(append-only snapshots with restore), export (same codecs). Each stage
is independently testable.

RULES:
- All stages exchange the same Segment list IR
- A bad provider answer degrades one batch, never the whole transcript
- Version snapshots never share state with the live transcript
"""

__version__ = "0.1.0"
