"""Core refinement, parsing, and versioning modules.

WHY: The core package contains the stable heart of the refiner:
the IR dataclasses, the resilient response parser, the batch
partitioner/stitcher, and the version history log. Every outer layer
(CLI, HTTP API) is a thin shell around these.

HOW: ir.py defines the data structures, parser.py recovers segments
from unreliable provider text, batching.py drives a refinement batch by
batch, history.py keeps immutable snapshots, session.py ties them to a
single live transcript.

RULES:
- IR dataclasses are the contract; change with care
- Parser strategies are pure functions, independently testable
- Nothing in core performs network I/O directly; providers are injected
"""
