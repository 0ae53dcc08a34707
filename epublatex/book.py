"""Write books in EPUB format, or as a directory of XHTML files."""

from __future__ import annotations

import datetime
import logging
import os
import posixpath
import uuid
import zipfile
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, BinaryIO, Optional, Protocol

from .section import SecNo
from .templates import render_templates

log = logging.getLogger(__name__)

EPUB_CONTAINER_NAME = "META-INF/container.xml"
EPUB_CONTENT_DIR = "OEBPS/"
EPUB_CONTENT_EXT = ".opf"
EPUB_CONTENT_NAME = "content"
EPUB_MIME_TYPE = "application/epub+zip"
EPUB_TEMPLATE_CONFIG = "config/epub"
XHTML_TEMPLATE_CONFIG = "config/xhtml"

CSS_NAME = "book"
NAV_NAME = "nav"
COVER_NAME = "cover"
TITLE_NAME = "title"

XHTML_TYPE = "application/xhtml+xml"

_BASE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "urn:epublatex:ebook")

# media type -> (directory, file name extension)
_MEDIA_LAYOUT = {
    XHTML_TYPE: ("", ".xhtml"),
    "text/css": ("css/", ".css"),
    "image/png": ("img/", ".png"),
    "image/jpeg": ("img/", ".jpg"),
}


class EpubError(Exception):
    """Base class of the errors raised while writing a book."""


class BookClosedError(EpubError):
    """An attempt was made to write to a closed book."""

    def __init__(self) -> None:
        super().__init__("attempt to write in a closed book")


class NoTitleError(EpubError):
    """The document title has not been set."""

    def __init__(self) -> None:
        super().__init__("document title not set")


class WrongSectionLevelError(EpubError):
    """A section was added at a level that does not fit the current one."""

    def __init__(self) -> None:
        super().__init__("wrong section level")


class WrongFileTypeError(EpubError):
    """A file has a type that cannot be used where it was given."""

    def __init__(self) -> None:
        super().__init__("wrong file type")


@dataclass
class File:
    """A file registered in the book."""

    id: str
    media_type: str
    path: str = ""


@dataclass
class TOCEntry:
    """An entry of the table of contents.

    ``up`` and ``down`` give how many list levels are opened before and
    closed after the entry.
    """

    level: int
    title: str
    path: str
    id: str
    up: int = 0
    down: int = 0


class Driver(Protocol):
    """Where and how the files of a book are stored."""

    def close(self, book: "Book") -> None:
        ...

    def create(self, path: str) -> BinaryIO:
        ...

    def make_path(self, path: str) -> str:
        ...

    def config(self) -> str:
        ...


class EpubDriver:
    """Stores the files of a book in an EPUB (zip) archive."""

    def __init__(self, zip_file: zipfile.ZipFile) -> None:
        self.zip_file = zip_file

    def close(self, book: "Book") -> None:
        content_name = EPUB_CONTENT_DIR + book.unique_name(
            EPUB_CONTENT_NAME, EPUB_CONTENT_EXT
        )
        book._add_file_from_template(content_name, ["content.opf"], None)
        book._add_file_from_template(
            EPUB_CONTAINER_NAME,
            ["container.xml"],
            SimpleNamespace(content_name=content_name),
        )
        self.zip_file.close()

    def create(self, path: str) -> BinaryIO:
        return self.zip_file.open(path, "w")

    def make_path(self, path: str) -> str:
        return EPUB_CONTENT_DIR + path

    def config(self) -> str:
        return EPUB_TEMPLATE_CONFIG


class XhtmlDriver:
    """Stores the files of a book in a directory."""

    def __init__(self, base_dir: str) -> None:
        self.base_dir = base_dir

    def close(self, book: "Book") -> None:
        # Everything is written file by file; make sure the output
        # directory exists even for a book without any files.
        os.makedirs(self.base_dir or ".", exist_ok=True)

    def create(self, path: str) -> BinaryIO:
        out_path = os.path.join(self.base_dir, *path.split("/"))
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        return open(out_path, "wb")

    def make_path(self, path: str) -> str:
        return posixpath.normpath(path)

    def config(self) -> str:
        return XHTML_TEMPLATE_CONFIG


class _BookFile:
    """A writable handle on the file currently open in a book."""

    def __init__(self, book: "Book") -> None:
        self._book = book

    def write(self, data: bytes | str) -> int:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._book._current.write(data)
        return len(data)

    def close(self) -> None:
        self._book._close_file()

    def __enter__(self) -> "_BookFile":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Book:
    """A book being written, chapter by chapter, through a driver."""

    def __init__(self, driver: Driver, identifier: str) -> None:
        self.uuid = uuid.uuid5(_BASE_NAMESPACE, identifier)
        self.last_modified = datetime.datetime.now(datetime.timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )
        self.language = "en-GB"

        self.title = ""
        self.authors: list[str] = []

        self.spine: list[File] = []
        self.files: dict[str, File] = {}
        self.nav: list[TOCEntry] = []
        self.cover_image_id = ""
        self.cover_id = ""

        self.section_number = SecNo()
        self.section_level = 0

        self._open = True
        self._next_id = 0
        self._current: Optional[BinaryIO] = None
        self._current_path = ""
        self._driver = driver

        self.nav_path = self.register_file(NAV_NAME, XHTML_TYPE, False).path
        self.css_path = self.register_file(CSS_NAME, "text/css", False).path

    def __enter__(self) -> "Book":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        """Finish all open sections, write the navigation files and close the book."""
        if not self._open:
            return
        self._close_sections(0)
        if self.nav:
            self.nav[-1].down = self.nav[-1].level

        drv = self._driver
        for path, templates in (
            (drv.make_path(self.files[self.css_path].path), ["book.css"]),
            (drv.make_path(self.files[self.nav_path].path), ["nav.xhtml", drv.config()]),
        ):
            self._add_file_from_template(path, templates, None)

        self._open = False
        drv.close(self)

    def register_file(self, base_name: str, mime_type: str, in_spine: bool) -> File:
        """Register a new file of the given type, choosing a unique path for it."""
        try:
            directory, ext = _MEDIA_LAYOUT[mime_type]
        except KeyError:
            raise ValueError(f"unknown mime type {mime_type}") from None
        file = File(id=f"f{self._next_id}", media_type=mime_type)
        self._next_id += 1
        file.path = self.unique_name(directory + base_name, ext)
        self.files[file.path] = file
        if in_spine:
            self.spine.append(file)
        return file

    def create_file(self, file: File) -> _BookFile:
        """Open a registered file for writing; close the handle when done."""
        if not self._open:
            raise BookClosedError()
        self._close_sections(0)
        self._create_file(self._driver.make_path(file.path))
        return _BookFile(self)

    def add_cover_image(self, stream: BinaryIO) -> None:
        """Add a cover image, read from ``stream``, and a cover page showing it."""
        if not self._open:
            raise BookClosedError()
        data = stream.read()
        if len(data) < 512:
            raise EOFError("cover image shorter than 512 bytes")
        mime_type = detect_content_type(data[:512])
        if not mime_type.startswith("image/"):
            raise WrongFileTypeError()

        cover_image = self.register_file(COVER_NAME, mime_type, False)
        with self.create_file(cover_image) as out:
            out.write(data)
        self.cover_image_id = cover_image.id

        cover = self.register_file(COVER_NAME, XHTML_TYPE, True)
        self._add_file_from_template(
            self._driver.make_path(cover.path),
            ["cover.xhtml", self._driver.config()],
            SimpleNamespace(cover_image=cover_image.path),
        )
        self.cover_id = cover.id

    def add_title(self, title: str, authors: list[str]) -> None:
        """Set the title and authors and add a title page."""
        if not self._open:
            raise BookClosedError()
        self.title = title
        self.authors = list(authors)
        file = self.register_file(TITLE_NAME, XHTML_TYPE, True)
        self._add_file_from_template(
            self._driver.make_path(file.path),
            ["title.xhtml", self._driver.config()],
            None,
        )

    def add_section(self, level: int, title: str, sec_id: str) -> None:
        """Start a new section; level 1 starts a new chapter file."""
        if not self._open:
            raise BookClosedError()
        if level <= 0 or level > self.section_level + 1:
            raise WrongSectionLevelError()
        self._close_sections(level - 1)
        self.section_level = level
        self.section_number.inc(level)

        if self._current is None:
            file = self.register_file(f"ch{self.section_number}", XHTML_TYPE, True)
            log.info("writing %s ...", file.path)
            self._create_file(self._driver.make_path(file.path))
            self._current_path = file.path
            self._write_templates(
                ["chapter-head.xhtml", self._driver.config()],
                SimpleNamespace(level=level, title=title),
            )

        if not sec_id:
            sec_id = f"epub-{self.section_number}"

        up = down = 0
        if self.nav:
            last = self.nav[-1]
            if level < last.level:
                down = last.level - level
            else:
                up = level - last.level
            last.down = down
        else:
            up = level
        self.nav.append(
            TOCEntry(level=level, title=title, path=self._current_path, id=sec_id, up=up)
        )

        self._write_templates(
            ["section-head.xhtml", self._driver.config()],
            SimpleNamespace(
                level=level,
                sec_no=SecNo(self.section_number),
                title=title,
                id=sec_id,
            ),
        )

    def write_string(self, s: str) -> None:
        """Write text to the current file, starting front matter if needed."""
        if not self._open:
            raise BookClosedError()
        if self._current is None:
            if self.section_level > 0:
                raise RuntimeError("unexpected front matter")
            self.section_level = 1
            self.section_number = SecNo([0])
            file = self.register_file("front", XHTML_TYPE, True)
            log.info("writing %s ...", file.path)
            self._create_file(self._driver.make_path(file.path))
            self._current_path = file.path
            self._write_templates(["front-head.xhtml", self._driver.config()], None)
        self._current.write(s.encode("utf-8"))

    def unique_name(self, name: str, ext: str) -> str:
        """Return ``name + ext``, with a number inserted if the path is taken."""
        try_name = name + ext
        unique = 2
        while try_name in self.files:
            try_name = f"{name}{unique}{ext}"
            unique += 1
        return try_name

    def _close_file(self) -> None:
        current, self._current = self._current, None
        if current is not None:
            current.close()

    def _create_file(self, path: str) -> None:
        if self._current is not None:
            log.warning("file not closed")
            self._close_file()
        self._current = self._driver.create(path)

    def _write_templates(self, names: list[str], this: Any) -> None:
        text = render_templates(names, this, self)
        self._current.write(text.encode("utf-8"))

    def _add_file_from_template(self, path: str, names: list[str], this: Any) -> None:
        self._create_file(path)
        self._write_templates(names, this)
        self._close_file()

    def _close_sections(self, level: int) -> None:
        if self.section_level <= level:
            return
        while self.section_level > level:
            if self.section_number[0] > 0:
                self._write_templates(["section-tail.xhtml", self._driver.config()], None)
            self.section_level -= 1
        if self.section_level <= 0:
            tail = "chapter-tail.xhtml" if self.section_number[0] != 0 else "front-tail.xhtml"
            self._write_templates([tail, self._driver.config()], None)
            self._close_file()


def new_epub_writer(out: BinaryIO, identifier: str) -> Book:
    """Start a book written as an EPUB archive to the binary stream ``out``."""
    zip_file = zipfile.ZipFile(
        out, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    )
    # The "mimetype" file must come first and must not be compressed.
    info = zipfile.ZipInfo("mimetype")
    info.compress_type = zipfile.ZIP_STORED
    zip_file.writestr(info, EPUB_MIME_TYPE)
    return Book(EpubDriver(zip_file), identifier)


def new_xhtml_writer(base_dir: str, identifier: str) -> Book:
    """Start a book written as XHTML files into the directory ``base_dir``."""
    return Book(XhtmlDriver(base_dir), identifier)


_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\x00\x00\x02\x00", "image/x-icon"),
    (b"%PDF-", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xef\xbb\xbf", "text/plain; charset=utf-8"),
)

_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)


def detect_content_type(head: bytes) -> str:
    """Guess the media type of data from its first (up to 512) bytes."""
    head = bytes(head[:512])
    for signature, mime_type in _SIGNATURES:
        if head.startswith(signature):
            return mime_type
    if head[:4] == b"RIFF" and head[8:14] == b"WEBPVP":
        return "image/webp"
    if any(c in _BINARY_BYTES for c in head):
        return "application/octet-stream"
    return "text/plain; charset=utf-8"