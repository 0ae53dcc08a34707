"""Run LaTeX and convert its output pages into images."""

from __future__ import annotations

import enum
import logging
import os
import queue
import shutil
import subprocess
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from PIL import Image

log = logging.getLogger(__name__)

IMG_NAMES = "img%d.png"
MAX_WORKERS = 4

_DONE = object()


class BookImageType(enum.IntEnum):
    """Output format of an image added to the book."""

    PNG = 0
    JPG = 1


@dataclass
class BookImage:
    """A rendered image together with the information needed to embed it."""

    env: str
    body: str
    alt: str = ""
    css_class: str = ""
    style: str = ""
    image: Any = None
    type: BookImageType = BookImageType.PNG


def read_image(file_name: str) -> Image.Image:
    """Read a PNG image from disk."""
    with Image.open(file_name) as img:
        img.load()
        return img.copy()


class Queue:
    """Runs pdflatex and Ghostscript jobs, turning each output page into an image.

    ``resolution`` is the image resolution in pixels per inch.  If
    ``debug_dir`` is given, all intermediate files are left there.
    """

    def __init__(self, resolution: int, debug_dir: Optional[str] = None) -> None:
        self.resolution = str(resolution)
        if debug_dir:
            self.keep_files = True
            self.work_dir = os.path.abspath(debug_dir)
            log.info("leaving rendering information in %s", self.work_dir)
            os.makedirs(self.work_dir, exist_ok=True)
        else:
            self.keep_files = False
            self.work_dir = tempfile.mkdtemp(prefix="epublatex")
        self._job_idx = 0
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=MAX_WORKERS
        )

    def __enter__(self) -> Queue:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.finish()

    def submit(self, tex: str) -> Iterator[Optional[Image.Image]]:
        """Queue the TeX document ``tex`` for rendering.

        Returns an iterator over the page images, in page order.  A page
        whose image cannot be decoded is given as None.
        """
        if self._executor is None:
            raise RuntimeError("rendering queue already finished")
        self._job_idx += 1
        job_dir = os.path.join(self.work_dir, str(self._job_idx))
        results: queue.Queue = queue.Queue()
        self._executor.submit(self._process, tex, job_dir, results)
        return self._results(results)

    @staticmethod
    def _results(results: queue.Queue) -> Iterator[Optional[Image.Image]]:
        while True:
            img = results.get()
            if img is _DONE:
                return
            yield img

    def finish(self) -> None:
        """Wait for all jobs and shut the queue down."""
        if self._executor is None:
            return
        self._executor.shutdown(wait=True)
        self._executor = None
        if not self.keep_files:
            shutil.rmtree(self.work_dir, ignore_errors=True)

    def _run(self, cmd: list[str], job_dir: str, what: str) -> None:
        try:
            subprocess.run(
                cmd,
                cwd=job_dir,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            output = (exc.output or b"").decode("utf-8", errors="replace")
            log.error("%s failed: %s", what, exc)
            log.error("--- begin %s output ---\n%s\n--- end %s output ---", cmd[0], output, cmd[0])
            raise

    def _process(self, tex: str, job_dir: str, results: queue.Queue) -> None:
        try:
            os.makedirs(job_dir, exist_ok=True)
            with open(os.path.join(job_dir, "job.tex"), "w", encoding="utf-8") as fd:
                fd.write(tex)

            self._run(
                ["pdflatex", "-interaction=nonstopmode", "job.tex"],
                job_dir,
                "Converting LaTeX to PDF",
            )
            self._run(
                [
                    "gs",
                    "-dSAFER",
                    "-dBATCH",
                    "-dNOPAUSE",
                    "-r" + self.resolution,
                    "-sDEVICE=pngalpha",
                    "-dTextAlphaBits=4",
                    "-sOutputFile=" + IMG_NAMES,
                    "job.pdf",
                ],
                job_dir,
                "Converting formulas to PNG",
            )

            page_no = 0
            while True:
                page_no += 1
                image_file = os.path.join(job_dir, IMG_NAMES % page_no)
                try:
                    img = read_image(image_file)
                except FileNotFoundError:
                    break
                except OSError as exc:
                    log.error("decoding image %s failed: %s", image_file, exc)
                    img = None
                results.put(img)
        except Exception as exc:  # reported, the job yields no further images
            log.error("%s", exc)
        finally:
            if not self.keep_files:
                shutil.rmtree(job_dir, ignore_errors=True)
            results.put(_DONE)