"""Read LaTeX source files as a stream of bytes.

Handles include files and keeps track of the current position in the
input for use in error messages.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import BinaryIO

PEEK_WINDOW_SIZE = 128
"""Unless the input ends, at least this many bytes are visible to peek()."""

_PEEK_BUFFER_SIZE = 1024


@dataclass
class StackFrame:
    """One level of the include stack at the point of an error."""

    name: str
    line: int
    context: str


class ParseError(Exception):
    """The reason and location of a parse error."""

    def __init__(self, message: str, stack: list[StackFrame] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stack = list(stack or [])

    def __str__(self) -> str:
        parts = [self.message]
        for i, frame in enumerate(self.stack):
            if i > 0:
                parts.append(", included from")
            parts.extend(["\n    ", frame.name, ", line ", str(frame.line)])
            if frame.context:
                parts.append(", before " + json.dumps(frame.context, ensure_ascii=False))
        return "".join(parts)


@dataclass
class _Source:
    name: str
    fd: BinaryIO | None = None
    buffer: bytes = b""
    line: int = 0
    error: Exception | None = None

    def skip(self, n: int) -> None:
        self.line += self.buffer[:n].count(b"\n")
        self.buffer = self.buffer[n:]

    def fill(self) -> None:
        assert self.fd is not None
        try:
            data = self.fd.read(_PEEK_BUFFER_SIZE)
        except OSError as exc:
            self.error = exc
            data = b""
            finished = True
        else:
            finished = not data
        self.buffer += data
        if finished:
            try:
                self.fd.close()
            except OSError as exc:
                if self.error is None:
                    self.error = exc
            self.fd = None


@dataclass
class Scanner:
    """Walk recursively through a stack of input files and buffers.

    ``base_dir`` is the directory that file names passed to include()
    are taken relative to.
    """

    base_dir: str = ""
    _sources: list[_Source] = field(default_factory=list, repr=False)
    _peek_buf: bytes = field(default=b"", repr=False)
    _ready: bool = field(default=False, repr=False)

    def __init__(self) -> None:
        self.base_dir = ""
        self._sources = []
        self._peek_buf = b""
        self._ready = False

    def __enter__(self) -> Scanner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close all input files and discard all buffers."""
        first_error: Exception | None = None
        for src in self._sources:
            if src.fd is None:
                continue
            try:
                src.fd.close()
            except OSError as exc:
                if first_error is None:
                    first_error = exc
        self._sources = []
        self._peek_buf = b""
        if first_error is not None:
            raise first_error

    def prepend(self, data: bytes, name: str) -> None:
        """Make ``data`` the next input, followed by all previous inputs."""
        self._sources.append(_Source(name=name, buffer=bytes(data)))

    def include(self, file_name: str) -> None:
        """Make the contents of a file the next input."""
        if self.base_dir:
            file_name = os.path.join(self.base_dir, file_name)
        fd = open(file_name, "rb")
        self._sources.append(_Source(name=os.path.basename(file_name), fd=fd))
        if not self.base_dir:
            self.base_dir = os.path.dirname(os.path.abspath(file_name))

    def next(self) -> bool:
        """Fill the look-ahead buffer and report whether input remains.

        Must be called before every call to peek().
        """
        parts: list[bytes] = []
        size = 0
        for src in reversed(self._sources):
            if size >= PEEK_WINDOW_SIZE:
                break
            if (
                size + len(src.buffer) < PEEK_WINDOW_SIZE
                and src.fd is not None
                and src.error is None
            ):
                src.fill()
            parts.append(src.buffer)
            size += len(src.buffer)
            if src.error is not None:
                break
        self._peek_buf = b"".join(parts)

        while (
            self._sources
            and not self._sources[-1].buffer
            and self._sources[-1].error is None
        ):
            self._sources.pop()
        self._ready = True
        return bool(self._peek_buf) or bool(self._sources)

    def peek(self) -> bytes:
        """Return the bytes after the current position without consuming them.

        Raises ParseError if reading the input failed.
        """
        if not self._ready:
            raise RuntimeError("scanner not ready, missing call to next()")
        if self._peek_buf:
            return self._peek_buf
        if not self._sources:
            raise EOFError("end of input")
        raise self.make_error(str(self._sources[-1].error))

    def skip(self, n: int) -> None:
        """Advance the current input position by ``n`` bytes."""
        if n < 0:
            raise ValueError("invalid skip amount")
        self._ready = False
        idx = len(self._sources) - 1
        while n > 0:
            if idx < 0:
                raise ValueError("skip beyond end of input")
            src = self._sources[idx]
            k = min(len(src.buffer), n)
            src.skip(k)
            n -= k
            self._peek_buf = self._peek_buf[k:]
            idx -= 1

    def make_error(self, message: str) -> ParseError:
        """Build an error holding ``message`` and the current input position."""
        stack = []
        for src in reversed(self._sources):
            if len(src.buffer) > 20:
                context = src.buffer[:17].decode("utf-8", errors="replace") + "..."
            else:
                context = src.buffer.decode("utf-8", errors="replace")
            stack.append(StackFrame(name=src.name, line=src.line + 1, context=context))
        return ParseError(message, stack)