"""Byte frequency analyzer.

This module streams a file in fixed-size chunks, tallies how often each byte
value (0-255) occurs, and prints the result as a table with one row per byte
that appears at least once. Control characters and a few invisible bytes are
shown by name so the table stays readable.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from contextlib import nullcontext
from pathlib import Path
from typing import (
    BinaryIO,
    Callable,
    ContextManager,
    Dict,
    List,
    NamedTuple,
    Optional,
    Sequence,
    TextIO,
    Tuple,
)


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 128 * 1024
MAX_CHUNK_SIZE = 1 << 30

EXIT_OK = 0

CountTable = List[int]
ProgressCallback = Callable[[int, int], None]

LABELS: Dict[int, str] = {
    0x00: "<NULL>",
    0x01: "<SOH>",
    0x02: "<STX>",
    0x03: "<ETX>",
    0x04: "<EOT>",
    0x05: "<ENQ>",
    0x06: "<ACK>",
    0x07: "<BEL>",
    0x08: "<BS>",
    0x09: "<TAB>",
    0x0A: "\\n",
    0x0B: "<VT>",
    0x0C: "<FF>",
    0x0D: "\\r",
    0x0E: "<SO>",
    0x0F: "<SI>",
    0x10: "<DLE>",
    0x11: "<DC1>",
    0x12: "<DC2>",
    0x13: "<DC3>",
    0x14: "<DC4>",
    0x15: "<NAK>",
    0x16: "<SYN>",
    0x17: "<ETB>",
    0x18: "<CAN>",
    0x19: "<EM>",
    0x1A: "<SUB>",
    0x1B: "<ESC>",
    0x1C: "<FS>",
    0x1D: "<GS>",
    0x1E: "<RS>",
    0x1F: "<US>",
    0x20: "<space>",
    0x7F: "<DEL>",
    0xA0: "<non break space>",
    0xAD: "<soft hyphen>",
}


class FreqsError(RuntimeError):
    """Base class for failures that abort an analysis run."""

    exit_code = 1


class SourceOpenFailure(FreqsError):
    exit_code = 3


class ReadFailure(FreqsError):
    exit_code = 4


class SinkWriteFailure(FreqsError):
    exit_code = 5


class DisplayLine(NamedTuple):
    hex_text: str
    occurrences: int
    label: str

    def __str__(self) -> str:
        return f"  {self.hex_text:<3}: {self.occurrences}: {self.label}"


def empty_table() -> CountTable:
    return [0] * 256


class ChunkedCounter:
    """Tallies byte values from a binary stream using a bounded read size."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if not 1 <= chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}, got {chunk_size}")
        self.chunk_size = chunk_size

    def consume_all(
        self, source: BinaryIO, progress: Optional[ProgressCallback] = None
    ) -> Tuple[CountTable, int]:
        """Read ``source`` to exhaustion and return ``(table, total_bytes)``.

        Each chunk is folded into the table before the next read, so at most
        ``chunk_size`` bytes are held at once. ``progress`` is called after
        every chunk with the number of chunks and bytes processed so far.
        """

        table = empty_table()
        total = 0
        chunks = 0
        while True:
            try:
                chunk = source.read(self.chunk_size)
            except OSError as exc:
                raise ReadFailure(f"Read failed after {total} bytes: {exc}") from exc
            if not chunk:
                break
            for value, occurrences in Counter(chunk).items():
                table[value] += occurrences
            total += len(chunk)
            chunks += 1
            logger.debug("chunk %d: %d bytes", chunks, len(chunk))
            if progress is not None:
                progress(chunks, total)
        return table, total


def count_file(
    path: Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress: Optional[ProgressCallback] = None,
) -> Tuple[CountTable, int]:
    """Open ``path`` in binary mode and count its bytes."""

    counter = ChunkedCounter(chunk_size)
    try:
        handle = path.open("rb")
    except OSError as exc:
        raise SourceOpenFailure(f"Could not open {path}: {exc.strerror or exc}") from exc
    with handle:
        return counter.consume_all(handle, progress)


def merge_tables(*tables: Sequence[int]) -> CountTable:
    """Add count tables elementwise, e.g. tables built over disjoint ranges."""

    merged = empty_table()
    for table in tables:
        for value, occurrences in enumerate(table):
            merged[value] += occurrences
    return merged


def label_for(value: int) -> str:
    """Return the display label for a single byte value."""

    label = LABELS.get(value)
    if label is not None:
        return label
    if value < 0x80:
        return chr(value)
    # Not valid text on its own in any encoding we could assume.
    return f"\\x{value:02x}"


def render(table: Sequence[int]) -> List[DisplayLine]:
    """Build one row per byte value with a nonzero count, ascending."""

    return [
        DisplayLine(format(value, "x"), count, label_for(value))
        for value, count in enumerate(table)
        if count
    ]


def render_lines(table: Sequence[int]) -> List[str]:
    """Return the output text lines: a blank line, then the table rows."""

    return [""] + [str(line) for line in render(table)]


def write_lines(lines: Sequence[str], sink: TextIO) -> int:
    """Write every line to ``sink`` and return how many writes failed.

    A failing line is logged and skipped; later lines are still attempted.
    """

    failures = 0
    for line in lines:
        try:
            sink.write(line + "\n")
        except OSError as exc:
            failures += 1
            logger.warning("could not write line %r: %s", line, exc)
    return failures


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="freqs",
        description=(
            "Count how often each byte value occurs in a file and print a table "
            "of the bytes that appear, with names for control characters."
        ),
    )
    parser.add_argument("input", type=Path, help="Path to the file to analyze")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        nargs="?",
        const=None,
        default=None,
        help=(
            "Append the table to this file instead of printing it. If the flag "
            "is given without a path the table goes to stdout."
        ),
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help=f"Number of bytes to read per chunk (default: {DEFAULT_CHUNK_SIZE})",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Do not print chunk progress to stderr",
    )
    args = parser.parse_args(argv)
    if not 1 <= args.chunk_size <= MAX_CHUNK_SIZE:
        parser.error(f"--chunk-size must be between 1 and {MAX_CHUNK_SIZE}")
    return args


class ChunkProgress:
    """Redraws a chunk counter on a single stderr line."""

    def __init__(self, path: Path, chunk_size: int) -> None:
        try:
            self.expected = -(-path.stat().st_size // chunk_size)
        except OSError:
            self.expected = 0
        self.shown = False

    def __call__(self, chunks: int, _total: int) -> None:
        print(f"\rprocessed chunk {chunks} / {self.expected}", end="", file=sys.stderr, flush=True)
        self.shown = True

    def end_line(self) -> None:
        """Terminate the counter line so later stderr output starts fresh."""

        if self.shown:
            print(file=sys.stderr)
            self.shown = False


def open_sink(path: Optional[Path]) -> ContextManager[TextIO]:
    """Return the output stream: stdout, or ``path`` opened for appending."""

    if path is None:
        return nullcontext(sys.stdout)
    try:
        return path.open("a", encoding="utf-8")
    except OSError as exc:
        raise SinkWriteFailure(f"Could not open {path}: {exc.strerror or exc}") from exc


def run(args: argparse.Namespace) -> None:
    # Sink first, then the scan.
    with open_sink(args.output) as sink:
        progress = None if args.no_progress else ChunkProgress(args.input, args.chunk_size)
        try:
            table, total = count_file(args.input, args.chunk_size, progress)
        finally:
            if progress is not None:
                progress.end_line()
        if progress is not None:
            print("done!", file=sys.stderr)
        logger.debug("counted %d bytes from %s", total, args.input)

        lines = render_lines(table)
        failures = write_lines(lines, sink)
    if failures:
        raise SinkWriteFailure(f"{failures} of {len(lines)} lines could not be written")


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    args = parse_args(argv)
    try:
        run(args)
    except FreqsError as exc:
        print(f"Error: {exc}\nAborting", file=sys.stderr)
        return exc.exit_code
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
