"""Macros, environments, counters and cross references used when converting to HTML.

The functions here work on a converter object which provides the
attributes ``macros``, ``envs``, ``counters``, ``pkg_state``, ``labels``,
``title`` and ``author``, and the method ``convert_html(tokens)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .tokens import Arg, Token, TokenType

log = logging.getLogger(__name__)

NO_BREAK_SPACE = "\u00a0"
HORIZONTAL_ELLIPSIS = "\u2026"

IsEnd = Callable[[Token], bool]


def _escape(text: str) -> str:
    """Escape the characters which are special in HTML."""
    return (
        text.replace("&", "&amp;")
        .replace("'", "&#39;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&#34;")
    )


def _is_letter(c: str) -> bool:
    return "A" <= c <= "Z" or "a" <= c <= "z"


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


# ------------------------------------------------------------ counters


@dataclass
class CounterInfo:
    """A LaTeX counter, printed as ``prefix`` followed by its value."""

    value: int = 0
    parent: str = ""
    prefix: str = ""

    def inc(self) -> str:
        """Increase the counter by one and return its new printed form."""
        self.value += 1
        return str(self)

    def __str__(self) -> str:
        return f"{self.prefix}{self.value}"


@dataclass
class Environment:
    """How an environment is shown: CSS classes, a numbered prefix, maths rendering."""

    css_classes: list[str] = field(default_factory=list)
    prefix: str = ""
    counter: str = ""
    render_math: str = ""


# --------------------------------------------------------- cross refs


@dataclass
class XRef:
    """A label together with the place it refers to."""

    label: str = ""
    chapter: int = 0
    id: str = ""
    pos: int = -1
    type: str = ""
    name: str = ""


def xref_normalise(label: str, used: list[XRef]) -> str:
    """Turn ``label`` into an HTML id which is not yet used by any of ``used``."""
    chars: list[str] = []
    hyphen_seen = False
    for c in label:
        if not (_is_letter(c) or _is_digit(c) or c in "_:."):
            c = "-"
        if c == "-" and hyphen_seen:
            continue
        if not chars and not _is_letter(c):
            chars.append("x")
        chars.append(c)
        hyphen_seen = c == "-"
    base = "".join(chars) or "x"

    taken = {xr.id for xr in used}
    res = base
    sfx = 2
    while res in taken:
        res = f"{base}{sfx}"
        sfx += 1
    return res


def is_math_start(token: Token, envs: dict[str, Environment]) -> tuple[str, Optional[IsEnd]]:
    """Check whether ``token`` starts maths.

    Returns the maths environment to render with and a function which
    recognises the closing token, or ``("", None)``.
    """
    if token.type == TokenType.OTHER and token.name == "$":
        def dollar_end(tok: Token) -> bool:
            return tok.type == TokenType.OTHER and tok.name == "$"

        return "$", dollar_end

    if token.type != TokenType.MACRO or token.name != "\\begin":
        return "", None

    env_name = str(token.args[0])
    env = envs.get(env_name)
    if env is None or not env.render_math:
        return "", None

    def env_end(tok: Token) -> bool:
        if tok.type != TokenType.MACRO or tok.name != "\\end":
            return False
        return str(tok.args[0]) == env_name

    return env.render_math, env_end


# -------------------------------------------------------------- macros


@dataclass(frozen=True)
class SubstMacro:
    """A macro replaced by fixed text."""

    text: str

    def html_output(self, args: list[Arg], conv: Any) -> str:
        return self.text


class IgnoreMacro(SubstMacro):
    """A macro which produces no output."""

    def __init__(self) -> None:
        super().__init__("")

    def html_output(self, args: list[Arg], conv: Any) -> str:
        return super().html_output(args, conv)


@dataclass(frozen=True)
class HtmlTagMacro:
    """A macro whose argument is wrapped in an HTML element."""

    tag: str

    def html_output(self, args: list[Arg], conv: Any) -> str:
        return f"<{self.tag}>{conv.convert_html(args[0].value)}</{self.tag}>"


@dataclass(frozen=True)
class FuncMacro:
    """A macro whose output is computed by ``func(args, conv)``."""

    func: Callable[[list[Arg], Any], str]

    def html_output(self, args: list[Arg], conv: Any) -> str:
        return self.func(args, conv)


IGNORE = IgnoreMacro()


def m_epub_author(args: list[Arg], conv: Any) -> str:
    conv.author = str(args[0])
    return ""


def m_epub_title(args: list[Arg], conv: Any) -> str:
    conv.title = str(args[0])
    return ""


def m_verbatim(args: list[Arg], conv: Any) -> str:
    return '<pre class="latex-verbatim">' + _escape(str(args[0])) + "\n</pre>\n"


def m_ref(args: list[Arg], conv: Any) -> str:
    target = str(args[0])
    for label in conv.labels:
        if label.label == target:
            fname = f"ch{label.chapter}.xhtml"
            return f'<a href="{fname}#{label.id}">{label.name}</a>'
    return '<span class="error">' + _escape(target) + "</span>"


def m_verb(args: list[Arg], conv: Any) -> str:
    return '<span class="latex-verb">' + _escape(str(args[0])) + "</span>"


def m_use_package(args: list[Arg], conv: Any) -> str:
    options = str(args[0])
    pkg_name = str(args[1])
    install = PKG_INIT.get(pkg_name)
    if install is not None:
        install(conv, options)
    else:
        log.info("unknown package %r (options %r)", pkg_name, options)
    return ""


def m_newtheorem(args: list[Arg], conv: Any) -> str:
    name = str(args[1])
    counter = str(args[2]) or name
    counter_name = "amsthm@" + counter

    if counter == name:
        conv.counters[counter_name] = CounterInfo(parent=str(args[4]))
    conv.envs[name] = Environment(
        css_classes=["amsthm-" + conv.pkg_state["amsthm@style"]],
        prefix=str(args[3]),
        counter=counter_name,
    )
    return ""


def m_theoremstyle(args: list[Arg], conv: Any) -> str:
    conv.pkg_state["amsthm@style"] = str(args[0])
    return ""


def install_builtin_macros(conv: Any) -> None:
    """Install the macros, counters and environments every document knows."""
    m = conv.macros

    # built-in EPUB support
    m["\\epubauthor"] = FuncMacro(m_epub_author)
    m["\\epubtitle"] = FuncMacro(m_epub_title)

    # built-in special macros
    m["%verbatim%"] = FuncMacro(m_verbatim)

    # TeX/LaTeX macros
    m["\\documentclass"] = IGNORE
    m["\\label"] = IGNORE  # handled during pass 1
    m["\\ref"] = FuncMacro(m_ref)
    m["\\usepackage"] = FuncMacro(m_use_package)
    m["\\verb"] = FuncMacro(m_verb)
    m["\\textit"] = HtmlTagMacro("i")
    m["\\textbf"] = HtmlTagMacro("b")
    m["\\dots"] = SubstMacro(HORIZONTAL_ELLIPSIS)

    conv.counters["base@equation"] = CounterInfo()
    conv.envs["equation"] = Environment(
        prefix="Equation",
        counter="base@equation",
        render_math="equation*",
    )


# ------------------------------------------------------------ packages


def add_no_macros(conv: Any, options: str) -> None:
    """Package loader for packages which need no macros; keeps the options given."""
    conv.pkg_state["nomacros@options"] = options


def add_amsmath_macros(conv: Any, options: str) -> None:
    conv.macros["\\DeclareMathOperator"] = IGNORE
    conv.envs["equation*"] = Environment(render_math="equation*")
    conv.envs["align*"] = Environment(render_math="align*")


def add_amsthm_macros(conv: Any, options: str) -> None:
    conv.pkg_state["amsthm@style"] = "plain"
    conv.macros["\\newtheorem"] = FuncMacro(m_newtheorem)
    conv.macros["\\theoremstyle"] = FuncMacro(m_theoremstyle)


def add_tikz_macros(conv: Any, options: str) -> None:
    """Package loader for tikz; pictures are handled by the converter, options are kept."""
    conv.pkg_state["tikz@options"] = options


PKG_INIT: dict[str, Callable[[Any, str], None]] = {
    "amsfonts": add_no_macros,
    "amsmath": add_amsmath_macros,
    "amsthm": add_amsthm_macros,
    "tikz": add_tikz_macros,
}