"""Convert LaTeX text input into a stream of tokens.

The tokenizer expands macros as it goes.  Which macros and environments
it knows about is held in the ``macros`` and ``environments`` tables;
a plain Tokenizer starts with both empty.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional, Protocol, Union

from .scanner import PEEK_WINDOW_SIZE, Scanner
from .tokens import Arg, MissingEndError, Token, TokenList, TokenType, verbatim

log = logging.getLogger(__name__)

IsEnd = Callable[[Token], bool]


class Macro(Protocol):
    """Reads the arguments of a macro whose name has just been read."""

    def read_args(self, p: "Tokenizer", name: str) -> Optional[list[Token]]:
        ...


class Environment(Protocol):
    """Reads the arguments of an environment after ``\\begin{name}``.

    Returns the tokens to emit and, for environments which collect their
    body into the first token, a function recognising the end token.
    """

    def read_args(
        self, p: "Tokenizer", name: str
    ) -> tuple[Optional[list[Token]], Optional[IsEnd]]:
        ...


_DOUBLE = frozenset({b"$$", b"``", b"''"})

_UNITS = frozenset(
    {"pt", "pc", "bp", "in", "cm", "mm", "dd", "cc", "sp", "ex", "em", "fil", "fill", "filll"}
)


def _is_space(c: int) -> bool:
    return c in b" \t\r\n"


def _is_letter(c: int) -> bool:
    return 0x41 <= c <= 0x5A or 0x61 <= c <= 0x7A


def _is_digit(c: int) -> bool:
    return 0x30 <= c <= 0x39


def _is_number_char(c: int) -> bool:
    return _is_digit(c) or c in b".-"


def _span(buf: bytes, pred: Callable[[int], bool]) -> int:
    """Length of the longest prefix of ``buf`` whose bytes satisfy ``pred``."""
    return next((i for i, c in enumerate(buf) if not pred(c)), len(buf))


def _char_len(buf: bytes) -> int:
    """Number of bytes in the UTF-8 character at the start of ``buf``."""
    first = buf[0]
    if first >= 0xF0:
        n = 4
    elif first >= 0xE0:
        n = 3
    elif first >= 0xC0:
        n = 2
    else:
        n = 1
    return min(n, len(buf))


def _text(data: Union[bytes, bytearray]) -> str:
    return bytes(data).decode("utf-8", errors="replace")


def _byte(c: Union[str, bytes, int]) -> int:
    if isinstance(c, int):
        return c
    raw = c.encode("utf-8") if isinstance(c, str) else bytes(c)
    if len(raw) != 1:
        raise ValueError(f"expected a single byte, got {c!r}")
    return raw[0]


class Tokenizer(Scanner):
    """Split LaTeX input into syntactic units, expanding known macros."""

    def __init__(self) -> None:
        super().__init__()
        self.macros: dict[str, Macro] = {}
        self.environments: dict[str, Environment] = {}

    def parse_tex(self) -> Iterator[Token]:
        """Yield the tokens of the remaining input."""
        stack: list[tuple[Optional[IsEnd], Optional[Token]]] = []
        looking_for: Optional[IsEnd] = None
        collecting_into: Optional[Token] = None

        while self.next():
            buf = self.peek()
            first = buf[0]
            batch: list[Token] = []

            if first == 0x5C:  # backslash
                name = self.read_macro_name()
                macro = self.macros.get(name)
                if macro is not None:
                    batch = list(macro.read_args(self, name) or [])
                elif name == "\\begin":
                    env_name = self.read_mandatory_arg()
                    env = self.environments.get(env_name)
                    if env is not None:
                        tokens, new_looking_for = env.read_args(self, env_name)
                        batch = list(tokens or [])
                        if new_looking_for is not None:
                            stack.append((looking_for, collecting_into))
                        looking_for = new_looking_for
                        collecting_into = None
                    else:
                        log.info("unknown environment %s", env_name)
                        args = self.read_all_macro_args()
                        args.insert(0, Arg(False, TokenList([verbatim(env_name)])))
                        batch = [Token(TokenType.MACRO, name, args)]
                elif name == "\\include":
                    file_name = self.read_mandatory_arg()
                    if not file_name.endswith(".tex"):
                        file_name += ".tex"
                    self.include(file_name)
                else:
                    log.info("unknown macro %s", name)
                    args = self.read_all_macro_args()
                    batch = [Token(TokenType.MACRO, name, args)]
            elif first == 0x25:  # percent sign
                batch = [Token(TokenType.COMMENT, self.read_comment())]
            elif buf.startswith(b"\n\n"):
                self.skip_all_white_space()
                batch = [Token(TokenType.EMPTY_LINE)]
            elif _is_space(first):
                if not self.skip_white_space():
                    batch = [Token(TokenType.SPACE)]
            elif _is_letter(first):
                batch = [Token(TokenType.WORD, self.read_word())]
            else:
                n = 2 if buf[:2] in _DOUBLE else _char_len(buf)
                name = _text(buf[:n])
                self.skip(n)
                batch = [Token(TokenType.OTHER, name)]

            for tok in batch:
                if looking_for is not None:
                    if collecting_into is None:
                        tok.args.append(Arg())
                        collecting_into = tok
                        continue
                    if not looking_for(tok):
                        collecting_into.args[-1].value.append(tok)
                        continue
                    tok = collecting_into
                    looking_for, collecting_into = stack.pop()
                yield tok

        if looking_for is not None:
            raise MissingEndError(collecting_into.name if collecting_into else "")

    def parse_string(self, text: str) -> TokenList:
        """Tokenize ``text`` with a fresh tokenizer of the same kind."""
        p = type(self)()
        p.prepend(text.encode("utf-8"), "text")
        return TokenList(p.parse_tex())

    def read_comment(self) -> str:
        """Read a run of comment lines, returning them without the ``%``."""
        lines: list[str] = []
        parts: list[bytes] = []
        state = 1
        while self.next():
            buf = self.peek()
            if state == 1:  # look for '%'
                if buf[0] != 0x25:
                    break
                state = 2
            if state == 2:  # look for end of line
                pos = buf.find(b"\n")
                if pos < 0:
                    pos = len(buf)
                parts.append(buf[:pos])
                if pos < len(buf):
                    line = _text(b"".join(parts))
                    parts = []
                    lines.append(line[1:].rstrip())
                    state = 3
                self.skip(pos)
            elif state == 3:  # skip white space
                pos = _span(buf, _is_space)
                if pos < len(buf):
                    state = 1
                self.skip(pos)
        return "\n".join(lines)

    def skip_white_space(self) -> bool:
        """Skip white space; report (and re-insert) an empty line if one was seen."""
        newlines = 0
        while self.next():
            buf = self.peek()
            pos = _span(buf, _is_space)
            newlines += buf[:pos].count(b"\n")
            self.skip(pos)
            if pos < len(buf):
                break
        if newlines > 1:
            self.prepend(b"\n\n", "<end of paragraph>")
            return True
        return False

    def skip_all_white_space(self) -> None:
        """Skip all white space, including empty lines."""
        while self.next():
            buf = self.peek()
            pos = _span(buf, _is_space)
            self.skip(pos)
            if pos < len(buf):
                break

    def read_until_char(self, stop_char: Union[str, bytes, int]) -> str:
        """Read up to ``stop_char`` on the current line; consume the stop character."""
        stop = _byte(stop_char)
        res = bytearray()
        while self.next():
            buf = self.peek()
            for pos, c in enumerate(buf):
                if c == stop:
                    res += buf[:pos]
                    self.skip(pos + 1)
                    return _text(res)
                if c == 0x0A:
                    raise self.make_error("unexpected end of line")
            res += buf
            self.skip(len(buf))
        raise EOFError("end of input while looking for " + chr(stop))

    def read_balanced_until(self, stop_char: Union[str, bytes, int]) -> str:
        """Read up to an unquoted ``stop_char`` outside braces; consume it."""
        stop = _byte(stop_char)
        res = bytearray()
        level = 0
        quoted = False
        while self.next():
            buf = self.peek()
            for pos, c in enumerate(buf):
                if quoted:
                    quoted = False
                    continue
                if level <= 0 and c == stop:
                    res += buf[:pos]
                    self.skip(pos + 1)
                    return _text(res)
                if c == 0x7B:
                    level += 1
                elif c == 0x7D:
                    level -= 1
                elif c == 0x5C:
                    quoted = True
            res += buf
            self.skip(len(buf))
        raise EOFError("end of input while looking for " + chr(stop))

    def read_until_string(self, end_marker: str) -> str:
        """Read up to ``end_marker``; the marker is consumed but not returned."""
        end = end_marker.encode("utf-8")
        res = bytearray()
        while self.next():
            buf = self.peek()
            pos = buf.find(end)
            if pos >= 0:
                res += buf[:pos]
                self.skip(pos + len(end))
                return _text(res)
            pos = len(buf) - len(end) + 1
            if pos <= 0:
                break
            res += buf[:pos]
            self.skip(pos)
        raise EOFError("end of input while looking for " + end_marker)

    def _read_run(self, pred: Callable[[int], bool]) -> str:
        res = bytearray()
        while self.next():
            buf = self.peek()
            pos = _span(buf, pred)
            res += buf[:pos]
            self.skip(pos)
            if pos < len(buf):
                break
        return _text(res)

    def read_word(self) -> str:
        """Read a run of ASCII letters."""
        return self._read_run(_is_letter)

    def read_number(self) -> str:
        """Read a run of digits, dots and minus signs."""
        return self._read_run(_is_number_char)

    def read_unit(self) -> str:
        """Read a TeX unit such as ``pt`` and the white space after it."""
        if not self.next():
            raise EOFError("end of input while looking for a unit")
        buf = self.peek()
        n = _span(buf, _is_letter)
        word = _text(buf[:n])
        if word not in _UNITS:
            following = buf[:10] + b"..." if len(buf) > 13 else buf
            raise self.make_error("expected unit, got " + _text(following))
        self.skip(n)
        self.skip_white_space()
        return word

    def read_macro_name(self) -> str:
        """Read a macro name including the backslash.

        White space after a name made of letters is skipped.
        """
        if not self.next():
            raise EOFError("end of input while looking for a macro name")
        buf = self.peek()
        if buf[0] != 0x5C:
            n = _char_len(buf)
            self.skip(n)
            return _text(buf[:n])
        if len(buf) < 2:
            raise EOFError("end of input after backslash")
        if not _is_letter(buf[1]):
            n = 1 + _char_len(buf[1:])
            self.skip(n)
            return _text(buf[:n])

        i = 1 + _span(buf[1:], _is_letter)
        if i >= PEEK_WINDOW_SIZE:
            raise self.make_error("macro name too long")
        name = _text(buf[:i])
        self.skip(i)
        self.skip_white_space()
        return name

    def read_mandatory_arg(self) -> str:
        """Read a braced argument, or a single character."""
        self.skip_white_space()
        if not self.next():
            raise EOFError("end of input while looking for an argument")
        buf = self.peek()
        n = _char_len(buf)
        self.skip(n)
        if buf[0] != 0x7B:
            return _text(buf[:n])
        return self.read_balanced_until("}")

    def read_optional_arg(self) -> str:
        """Read an argument in square brackets, or return "" if there is none."""
        if not self.next():
            return ""
        buf = self.peek()
        space = _is_space(buf[0])
        if space:
            self.skip_white_space()

        if not self.next():
            return ""
        buf = self.peek()
        if buf[0] != 0x5B:
            if space:
                self.prepend(b" ", "space after macro")
            return ""
        self.skip(1)
        return self.read_balanced_until("]")

    def read_optional_star(self) -> TokenList:
        """Read an optional ``*``, returned as a one-token list if present."""
        if not self.next():
            raise EOFError("end of input while looking for a star")
        buf = self.peek()
        if buf[0] == 0x2A:
            self.skip(1)
            return TokenList([Token(TokenType.OTHER, "*")])
        return TokenList()

    def read_all_macro_args(self) -> list[Arg]:
        """Read all braced and bracketed arguments that follow, skipping comments."""
        args: list[Arg] = []
        while self.next():
            first = self.peek()[0]
            if first == 0x7B:
                self.skip(1)
                args.append(Arg(False, self.parse_string(self.read_balanced_until("}"))))
            elif first == 0x5B:
                self.skip(1)
                args.append(Arg(True, self.parse_string(self.read_balanced_until("]"))))
            elif first == 0x25:
                self.read_comment()
            else:
                break
        return args