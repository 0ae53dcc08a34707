"""Command line interface: convert a LaTeX file into an EPUB book or XHTML files."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from .book import new_epub_writer, new_xhtml_writer
from .converter import convert

log = logging.getLogger(__name__)

BOOK_ID = "my second ebook (test)"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="epublatex", description="Convert a LaTeX document into an EPUB book."
    )
    parser.add_argument("--output", default="", help="the output file name")
    parser.add_argument(
        "--html", action="store_true", help="generate HTML instead of EPUB"
    )
    parser.add_argument("input", help="the LaTeX input file")
    return parser


def _output_name(input_name: str, html: bool) -> str:
    base = os.path.basename(input_name)
    if base.endswith(".tex"):
        base = base[: -len(".tex")]
    return base if html else base + ".epub"


def _write(book, input_name: str) -> None:
    try:
        convert(book, input_name)
    finally:
        book.close()


def main(argv=None) -> int:
    """Run the converter; exits with status 1 if the conversion fails."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    output_name = args.output or _output_name(args.input, args.html)
    log.info("writing %s", output_name)

    try:
        if args.html:
            _write(new_xhtml_writer(output_name, BOOK_ID), args.input)
        else:
            with open(output_name, "wb") as out:
                _write(new_epub_writer(out, BOOK_ID), args.input)
    except Exception as exc:
        log.error("%s", exc)
        raise SystemExit(1) from exc

    log.info("done")
    return 0


if __name__ == "__main__":
    sys.exit(main())