"""Rendering of mathematical formulas into images."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from PIL import Image

from .render import BookImage, BookImageType, Queue

log = logging.getLogger(__name__)

RENDER_RES = 3 * 96  # pixels per inch
EX_HEIGHT = 4.30554  # x-height of cmi10, TeX pt per ex
EX_PER_PIX = 72.27 / EX_HEIGHT / RENDER_RES

BATCH_SIZE = 10

_TEX_HEAD = (
    "\\documentclass{minimal}\n"
    "\n"
    "\\usepackage[paperwidth=6in,paperheight=9in,margin=0pt]{geometry}\n"
    "\n"
    "\\usepackage{pdfrender}\n"
    "\\pdfrender{TextRenderingMode=2,LineWidth=0.05pt}\n"
    "\n"
)

_TEX_BODY_START = (
    "\n"
    "\\parindent0pt\n"
    "\\parskip0pt\n"
    "\n"
    "\\begin{document}\n"
    "\\fontsize{10}{12}\\selectfont\n"
    "\n"
)


@dataclass
class _FormulaInfo:
    key: str
    env: str
    formula: str


def _tex_source(preamble: list[str], formulas: list[_FormulaInfo]) -> str:
    parts = [_TEX_HEAD]
    parts.extend(line + "\n" for line in preamble)
    parts.append(_TEX_BODY_START)
    for info in formulas:
        if info.env == "$":
            parts.append(
                "\\vrule width6bp height4.3pt depth0pt \\kern6bp\n$" + info.formula + "$\n"
            )
        else:
            parts.append(
                "\\begin{" + info.env + "}\n  " + info.formula + "\n\\end{" + info.env + "}\n"
            )
        parts.append("\\newpage\n\n")
    parts.append("\\end{document}\n")
    return "".join(parts)


@dataclass
class _Batch:
    formulas: list[_FormulaInfo]
    images: Iterator


class MathRenderer:
    """Renders formulas in batches and passes each result to ``out`` as a BookImage."""

    def __init__(self, out: Callable[[BookImage], None]) -> None:
        self._out = out
        self._preamble: list[str] = []
        self._seen: set[str] = set()
        self._batch: list[_FormulaInfo] = []
        self._pending: list[_Batch] = []
        self._queue = Queue(RENDER_RES)

    def add_preamble(self, line: str) -> None:
        """Add a line to the preamble of the TeX files used for rendering."""
        self._preamble.append(line)

    def add_formula(self, env: str, formula: str) -> None:
        """Queue a formula; ``env`` is ``$`` for inline maths or an environment name."""
        if "%" in env:
            raise ValueError("invalid math environment " + env)
        key = self.make_key(env, formula)
        if key in self._seen:
            return
        self._seen.add(key)
        self._batch.append(_FormulaInfo(key=key, env=env, formula=formula))
        if len(self._batch) >= BATCH_SIZE:
            self._run_batch()

    def make_key(self, env: str, formula: str) -> str:
        """Return the identifying key of a formula."""
        return f"{RENDER_RES}%{EX_HEIGHT:f}%{env}%{formula}"

    def finish(self) -> None:
        """Render what is left, deliver all images and shut down the renderer."""
        try:
            if self._batch:
                self._run_batch()
            for batch in self._pending:
                for info in batch.formulas:
                    img = next(batch.images, None)
                    if img is None:
                        log.error("missing image %s %s", info.env, info.formula)
                        continue
                    img = crop_inline(img) if info.env == "$" else crop_displayed(img)
                    self._deliver(info, img)
                for _ in batch.images:
                    log.error("received unexpected image from renderer")
        finally:
            self._pending = []
            self._queue.finish()

    def _run_batch(self) -> None:
        formulas, self._batch = self._batch, []
        tex = _tex_source(list(self._preamble), formulas)
        self._pending.append(_Batch(formulas, self._queue.submit(tex)))

    def _deliver(self, info: _FormulaInfo, img: Image.Image) -> None:
        alt = info.formula if len(info.formula.encode("utf-8")) <= 60 else "[formula]"
        css_class = "imath" if info.env == "$" else "dmath"
        ex_width = img.width * EX_PER_PIX
        self._out(
            BookImage(
                env=info.env,
                body=info.formula,
                alt=alt,
                css_class=css_class,
                style=f"width: {ex_width:.2f}ex",
                image=img,
                type=BookImageType.PNG,
            )
        )


class _Alpha:
    """Read access to the alpha channel of an image."""

    def __init__(self, image: Image.Image) -> None:
        self.image = image.convert("RGBA")
        self.width, self.height = self.image.size
        self.data = self.image.getchannel("A").tobytes()

    def at(self, x: int, y: int) -> int:
        return self.data[y * self.width + x]

    def column_used(self, x: int, y_min: int, y_max: int) -> bool:
        return any(self.at(x, y) for y in range(y_min, y_max))

    def used_rows(self) -> tuple[int, int]:
        first = next((i for i, a in enumerate(self.data) if a), None)
        if first is None:
            raise ValueError("image is empty")
        last = next(i for i in range(len(self.data) - 1, -1, -1) if self.data[i])
        return first // self.width, last // self.width + 1


def crop_inline(image: Image.Image) -> Image.Image:
    """Crop an inline formula image, using the marker at its left edge.

    The marker is removed and the result is centred vertically on it.
    """
    a = _Alpha(image)

    y0 = next((y for y in range(a.height) if a.at(0, y)), None)
    if y0 is None:
        raise ValueError("no baseline marker found")
    y1 = y0
    while y1 + 1 < a.height and a.at(0, y1 + 1):
        y1 += 1
    y_mid = (y0 + y1) // 2

    x_min = 0
    while x_min < a.width and a.at(x_min, y_mid):
        x_min += 1

    y_min, y_max = a.used_rows()
    if y0 - y_min > y_max - 1 - y1:
        y_max = y0 + y1 - y_min + 1
    else:
        y_min = y0 + y1 - y_max + 1
    y_min = max(y_min, 0)
    y_max = min(y_max, a.height)

    while x_min < a.width and not a.column_used(x_min, y_min, y_max):
        x_min += 1
    x_max = a.width
    while x_max > x_min and not a.column_used(x_max - 1, y_min, y_max):
        x_max -= 1

    return a.image.crop((x_min, y_min, x_max, y_max))


def crop_displayed(image: Image.Image) -> Image.Image:
    """Crop a displayed formula image, keeping it centred horizontally."""
    a = _Alpha(image)
    y_min, y_max = a.used_rows()

    x_min = 0
    x_max = a.width
    while x_min < a.width:
        if a.column_used(x_min, y_min, y_max) or a.column_used(x_max - 1, y_min, y_max):
            break
        x_min += 1
        x_max -= 1

    return a.image.crop((x_min, y_min, x_max, y_max))