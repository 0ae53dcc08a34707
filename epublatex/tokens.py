"""Token types produced when splitting LaTeX input into syntactic units."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field


class TokenType(enum.IntEnum):
    """The kinds of token found in LaTeX source."""

    MACRO = 0
    EMPTY_LINE = 1
    COMMENT = 2
    SPACE = 3
    WORD = 4
    OTHER = 5
    VERBATIM = 6


_LABELS = {
    TokenType.MACRO: "Macro",
    TokenType.EMPTY_LINE: "EmptyLine",
    TokenType.COMMENT: "Comment",
    TokenType.SPACE: "Space",
    TokenType.WORD: "Word",
    TokenType.OTHER: "Other",
    TokenType.VERBATIM: "Verbatim",
}


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class TokenList(list):
    """A sequence of tokens, e.g. the value of a macro argument."""

    def format_text(self) -> str:
        """Convert the tokens back into LaTeX source text."""
        parts: list[str] = []
        may_need_space = False
        for tok in self:
            if tok.type == TokenType.MACRO:
                parts.append(tok.name)
                for arg in tok.args:
                    text = arg.value.format_text()
                    if tok.name == "\\hskip":
                        pass
                    elif arg.optional:
                        if text:
                            text = "[" + text + "]"
                    else:
                        text = "{" + text + "}"
                    parts.append(text)
            elif tok.type == TokenType.COMMENT:
                pass
            elif tok.type == TokenType.SPACE:
                parts.append(" ")
            elif tok.type == TokenType.WORD:
                parts.append(" " + tok.name if may_need_space else tok.name)
            elif tok.type in (TokenType.OTHER, TokenType.VERBATIM):
                parts.append(tok.name)
            else:
                raise ValueError(f"invalid token type {tok.type!r}")
            if tok.type != TokenType.SPACE:
                may_need_space = _separates_words(tok)
        return "".join(parts)

    def format_maths(self) -> str:
        """Convert the tokens to LaTeX source, assuming maths mode.

        Redundant spaces are omitted.
        """
        parts: list[str] = []
        may_need_space = False
        for tok in self:
            if tok.type == TokenType.MACRO:
                parts.append(tok.name)
                for arg in tok.args:
                    if tok.name == "\\mbox":
                        parts.append("{" + arg.value.format_text() + "}")
                    elif tok.name == "\\hskip":
                        parts.append(arg.value.format_text())
                    elif arg.optional:
                        val = arg.value.format_maths()
                        if val:
                            parts.append("[" + val + "]")
                    else:
                        parts.append("{" + arg.value.format_maths() + "}")
            elif tok.type in (TokenType.COMMENT, TokenType.SPACE):
                pass
            elif tok.type == TokenType.WORD:
                parts.append(" " + tok.name if may_need_space else tok.name)
            elif tok.type in (TokenType.OTHER, TokenType.VERBATIM):
                parts.append(tok.name)
            else:
                raise ValueError(f"invalid token type {tok.type!r}")
            if tok.type != TokenType.SPACE:
                may_need_space = _separates_words(tok)
        return "".join(parts)


def _separates_words(tok: Token) -> bool:
    return tok.type == TokenType.MACRO and (not tok.args or tok.name == "\\hskip")


@dataclass
class Arg:
    """A single macro argument."""

    optional: bool = False
    value: TokenList = field(default_factory=TokenList)

    def __str__(self) -> str:
        return self.value.format_text()


@dataclass
class Token:
    """A single syntactic unit of TeX source.

    For macros, ``name`` holds the macro name including the backslash
    and ``args`` the macro arguments; for most other types ``name`` is
    the text of the token.
    """

    type: TokenType
    name: str = ""
    args: list[Arg] = field(default_factory=list)

    def __str__(self) -> str:
        label = _LABELS.get(self.type, f"type{int(self.type)}")
        if self.args:
            quoted = " ".join(_quote(str(arg)) for arg in self.args)
            return f"{label}('{self.name}' [{quoted}])"
        return f"{label}('{self.name}')"


def verbatim(text: str) -> Token:
    """Return a verbatim token holding ``text``."""
    return Token(TokenType.VERBATIM, text)


class MissingEndError(Exception):
    """An environment was opened but never closed."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unterminated {name}")
        self.name = name