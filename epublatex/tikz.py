"""Rendering of TikZ pictures into images."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from .render import BookImage, BookImageType, Queue

log = logging.getLogger(__name__)

RENDER_RES = 300  # pixels per inch
EX_HEIGHT = 4.30554  # x-height of cmi10, TeX pt per ex
EX_PER_PIX = 72.27 / EX_HEIGHT / RENDER_RES


def _tikz_source(preamble: list[str], body: str) -> str:
    lines = "".join(line + "\n" for line in preamble)
    return (
        "\\documentclass[tikz]{standalone}\n"
        + lines
        + "\n\\begin{document}\n\\begin{tikzpicture}\n"
        + body
        + "\n\\end{tikzpicture}\n\\end{document}\n"
    )


@dataclass
class _Pending:
    picture: str
    images: Iterator


class TikzRenderer:
    """Renders TikZ pictures and passes each result to ``out`` as a BookImage."""

    def __init__(self, out: Callable[[BookImage], None]) -> None:
        self._out = out
        self._preamble: list[str] = []
        self._seen: set[str] = set()
        self._pending: list[_Pending] = []
        self._queue = Queue(RENDER_RES)

    def add_preamble(self, line: str) -> None:
        """Add a line to the preamble of pictures added from now on."""
        self._preamble.append(line)

    def add_picture(self, picture: str) -> None:
        """Queue a picture body for rendering; repeated pictures are ignored."""
        key = self.make_key(picture)
        if key in self._seen:
            return
        self._seen.add(key)
        tex = _tikz_source(list(self._preamble), picture)
        self._pending.append(_Pending(picture, self._queue.submit(tex)))

    def make_key(self, picture: str) -> str:
        """Return the identifying key of a picture body."""
        digest = hashlib.sha3_224(picture.encode("utf-8")).hexdigest()
        return f"tikz:{RENDER_RES}:{EX_HEIGHT:f}:{digest}"

    def finish(self) -> None:
        """Wait for all pictures, deliver them, and shut down the renderer."""
        try:
            for pending in self._pending:
                img = next(pending.images, None)
                if img is None:
                    log.error("missing image %s", pending.picture)
                else:
                    self._deliver(pending.picture, img)
                for _ in pending.images:
                    log.error("received unexpected image from renderer")
        finally:
            self._pending = []
            self._queue.finish()

    def _deliver(self, picture: str, img) -> None:
        alt = picture if len(picture.encode("utf-8")) <= 60 else "[image]"
        ex_width = img.width * EX_PER_PIX
        self._out(
            BookImage(
                env="tikzpicture",
                body=picture,
                alt=alt,
                css_class="tikzpicture",
                style=f"width: {ex_width:.2f}ex",
                image=img,
                type=BookImageType.PNG,
            )
        )