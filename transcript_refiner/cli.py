"""Command-line interface for the Transcript Refiner.

WHY: Users need a simple way to refine or convert transcript files from
the terminal without running the HTTP API. The CLI wires together
import, batched refinement through a provider, and export behind two
subcommands.

HOW: Uses argparse with subcommands:
  convert: import a .srt/.txt file and export it in other formats
  refine : import, refine with an instruction, export the result
  serve  : run the HTTP API with uvicorn
The refine pipeline is async and runs via asyncio.run(). Status messages
go to stderr; output files are saved next to the source (or to
--output-dir) without overwriting existing files.

RULES:
- Positional argument: input transcript file (.srt or .txt)
- --formats: comma-separated formatter keys (default: all registered)
- Output naming: {stem}{suffix}, numeric suffix on conflict (-2.srt)
- Refined output uses the stem {stem}-refined
- Status output goes to stderr (not stdout)
- Exit status 1 on any error, with the message on stderr
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from transcript_refiner.config import BATCH_SIZE, CONTEXT_OVERLAP, DEFAULT_PROVIDER
from transcript_refiner.core.session import EditingSession
from transcript_refiner.formatters import FORMATTERS, EmptyImportError, format_for_path
from transcript_refiner.formatters.base import FormatterOutput
from transcript_refiner.providers import PROVIDERS, ProviderError, create_provider


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed immediately."""
    print(msg, file=sys.stderr, flush=True)


def _resolve_output_path(stem: str, suffix: str, output_dir: Path) -> Path:
    """Resolve the output file path, adding a numeric suffix on conflict.

    RULES:
    - First attempt: {stem}{suffix} (e.g. interview.srt)
    - Conflict: counter inserted before the extension (interview-2.srt)
    - Counter starts at 2 and increments
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx >= 0:
        suffix_name = suffix[:dot_idx]
        suffix_ext = suffix[dot_idx:]
    else:
        suffix_name = suffix
        suffix_ext = ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(output: FormatterOutput, stem: str, output_dir: Path) -> Path:
    path = _resolve_output_path(stem, output.suffix, output_dir)
    path.write_text(output.content, encoding="utf-8")
    return path


def _parse_formats(raw: Optional[str]) -> List[str]:
    if not raw:
        return list(FORMATTERS.keys())
    keys = [key.strip() for key in raw.split(",") if key.strip()]
    for key in keys:
        if key not in FORMATTERS:
            raise ValueError("Unknown format '{}'. Available: {}".format(
                key, ", ".join(sorted(FORMATTERS))
            ))
    return keys


def _load_session(input_path: Path) -> EditingSession:
    """Import an input file into a fresh session."""
    if not input_path.is_file():
        raise FileNotFoundError("Input file not found: {}".format(input_path))
    fmt = format_for_path(input_path)
    if fmt is None:
        raise ValueError("Unsupported file type '{}'. Supported: .srt, .txt".format(
            input_path.suffix
        ))
    session = EditingSession(name=input_path.name)
    session.import_text(input_path.read_text(encoding="utf-8-sig"), fmt)
    _status("Imported {} segments from {} ({} speakers)".format(
        len(session.transcript), input_path.name, len(session.speakers)
    ))
    return session


def _export(session: EditingSession, formats: List[str], stem: str, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    for key in formats:
        path = _save_output(session.export(key), stem, output_dir)
        _status("  Saved {}".format(path))


def _run_convert(args: argparse.Namespace) -> None:
    input_path = Path(args.input_file)
    session = _load_session(input_path)
    output_dir = Path(args.output_dir) if args.output_dir else input_path.parent
    _export(session, _parse_formats(args.formats), input_path.stem, output_dir)


async def _run_refine(args: argparse.Namespace) -> None:
    input_path = Path(args.input_file)
    formats = _parse_formats(args.formats)
    session = _load_session(input_path)

    options = {"model": args.model} if args.model else {}
    if args.provider == "gemini" and args.web_search:
        options["enable_web_search"] = True
    async with create_provider(args.provider, **options) as provider:
        _status("Refining with {}/{}...".format(provider.name, provider.model))
        result = await session.refine(
            args.instruction,
            provider,
            domain_context=args.context,
            batch_size=args.batch_size,
            context_overlap=args.context_overlap,
            max_concurrency=args.concurrency,
            on_status=_status,
        )

    fallback = [o.batch_index + 1 for o in result.outcomes if not o.parsed]
    if fallback:
        _status("Batches kept unchanged (unparseable response): {}".format(
            ", ".join(str(n) for n in fallback)
        ))
    _status("Changes:\n{}".format(result.changes))

    output_dir = Path(args.output_dir) if args.output_dir else input_path.parent
    _export(session, formats, "{}-refined".format(input_path.stem), output_dir)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="transcript_refiner",
        description="Refine long speech transcripts with a generative text "
                    "provider and convert between subtitle and plain text formats.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_io_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("input_file", help="Path to a .srt or .txt transcript.")
        sub.add_argument(
            "--formats",
            default=None,
            help="Comma-separated list of output formats. "
                 "Available: {}. Default: all.".format(", ".join(sorted(FORMATTERS))),
        )
        sub.add_argument(
            "--output-dir",
            default=None,
            help="Directory to save output files (default: same as input file).",
        )

    convert = subparsers.add_parser("convert", help="Convert a transcript between formats.")
    add_io_arguments(convert)

    refine = subparsers.add_parser("refine", help="Refine a transcript with an instruction.")
    add_io_arguments(refine)
    refine.add_argument(
        "-i", "--instruction",
        required=True,
        help="Free-form edit instruction, e.g. 'fix punctuation and names'.",
    )
    refine.add_argument(
        "--context",
        default=None,
        help="Background on the recording (topic, names, jargon).",
    )
    refine.add_argument(
        "--provider",
        choices=sorted(PROVIDERS),
        default=DEFAULT_PROVIDER,
        help="Generative text provider (default: %(default)s).",
    )
    refine.add_argument("--model", default=None, help="Override the provider's default model.")
    refine.add_argument(
        "--web-search",
        action="store_true",
        help="Enable search grounding (Gemini only).",
    )
    refine.add_argument(
        "--batch-size",
        type=int,
        default=BATCH_SIZE,
        help="Segments per provider call (default: %(default)s).",
    )
    refine.add_argument(
        "--context-overlap",
        type=int,
        default=CONTEXT_OVERLAP,
        help="Reference segments carried from the previous batch (default: %(default)s).",
    )
    refine.add_argument(
        "--concurrency",
        type=int,
        default=1,
        help="Maximum provider calls in flight (default: %(default)s).",
    )

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: %(default)s).")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: %(default)s).")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``python -m transcript_refiner``.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "convert":
            _run_convert(args)
        elif args.command == "refine":
            asyncio.run(_run_refine(args))
        else:
            from transcript_refiner.server.app import run_api
            run_api(host=args.host, port=args.port)
    except (EmptyImportError, ProviderError, ValueError, OSError) as exc:
        print("Error: {}".format(exc), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
