"""Assemble words into paragraphs and lines of HTML for a book."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Optional

from .latexmacros import NO_BREAK_SPACE

OUTPUT_LINE_WIDTH = 79
CSS_PREFIX = "latex-"


@dataclass
class State:
    """Font state of the LaTeX renderer, restored at the end of a group."""

    is_italic: bool = False
    is_bold: bool = False

    def copy(self) -> "State":
        return replace(self)


def _blen(s: str) -> int:
    return len(s.encode("utf-8"))


class HtmlWriter:
    """Collects text word by word and writes it as wrapped paragraphs to ``book``."""

    def __init__(self, book: Any, base_dir: str) -> None:
        self.book = book
        self.base_dir = base_dir

        self._word: list[str] = []
        self._line: list[str] = []
        self._line_length = 0

        self.state = State()
        self.stack: list[State] = []

        self._next_par_tag = ""

    def flush(self) -> None:
        """End the current paragraph."""
        self.end_paragraph()

    def add_cover_image(self, file_name: str) -> None:
        """Add the image ``file_name``, relative to the base directory, as cover."""
        with open(os.path.join(self.base_dir, file_name), "rb") as fd:
            self.book.add_cover_image(fd)

    def write_title(self, title: str, author: str) -> None:
        self.end_paragraph()
        self.book.add_title(title, [author])

    def add_section(self, level: int, title: str, sec_id: str) -> None:
        self.end_paragraph()
        self.book.add_section(level, title, sec_id)

    def write_vertical(self, body: str) -> None:
        """Write material which interrupts the current paragraph."""
        self._suspend_paragraph("cont")
        self.book.write_string(body)

    def start_block(self, name: str, classes: Optional[list[str]], sec_id: str) -> None:
        """Start a ``div`` block for the environment ``name``."""
        self.end_paragraph()
        id_attr = f' id="{sec_id}"' if sec_id else ""
        css_classes = [CSS_PREFIX + "block", name, *(classes or [])]
        self.book.write_string(f'<div{id_attr} class="{" ".join(css_classes)}">\n')

    def end_block(self) -> None:
        self.end_paragraph()
        self.book.write_string("</div>\n")

    def end_paragraph(self) -> None:
        self._suspend_paragraph("")

    def end_word(self) -> None:
        """End the current word; following text starts a new word."""
        self._end_word(False)

    def write_string(self, s: str) -> None:
        """Append text to the current word."""
        self._word.append(s)

    def _suspend_paragraph(self, cont_tag: str) -> None:
        self._next_par_tag = ""
        self._end_word(True)
        if not self._line:
            return
        self._next_par_tag = cont_tag
        self._write_line()

    def _write_line(self) -> None:
        if not self._line:
            return
        line = " ".join(self._line) + "\n"
        self._line = []
        self.book.write_string(line)

    def _end_word(self, end_par: bool) -> None:
        word = "".join(self._word)
        self._word = []

        if NO_BREAK_SPACE in word:
            word = f'<span class="{CSS_PREFIX}nw">{word}</span>'
        if end_par:
            end_tag = "</p>"
            if self.state.is_bold:
                end_tag = "</b>" + end_tag
            if self.state.is_italic:
                end_tag = "</i>" + end_tag
            if word:
                word += end_tag
            elif self._line:
                self._line[-1] += end_tag
                self._line_length += 4

        n = _blen(word)
        if n == 0:
            return

        if not self._line:
            tag = f'<p class="{self._next_par_tag}">' if self._next_par_tag else "<p>"
            if self.state.is_italic:
                tag += "<i>"
            if self.state.is_bold:
                tag += "<b>"
            self._line = [tag + word]
            self._line_length = _blen(tag) + n
        elif self._line_length + 1 + n <= OUTPUT_LINE_WIDTH:
            self._line.append(word)
            self._line_length += 1 + n
        else:
            self._write_line()
            self._line = [word]
            self._line_length = n