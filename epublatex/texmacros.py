"""Macros, environments and packages known to the LaTeX tokenizer.

LatexTokenizer is a Tokenizer that starts out knowing the built-in EPUB
macros, a selection of TeX/LaTeX macros and the environments
``document``, ``equation`` and ``verbatim``.  Packages loaded with
``\\usepackage`` add further macros and environments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .tokenizer import IsEnd, Tokenizer
from .tokens import Arg, Token, TokenList, TokenType, verbatim

log = logging.getLogger(__name__)


def _read_typed_args(p: Tokenizer, spec: str) -> list[Arg]:
    """Read arguments as described by ``spec``.

    ``A`` is a mandatory argument which is tokenized, ``O`` an optional
    argument which is tokenized, and ``V`` a mandatory argument kept
    verbatim.
    """
    args: list[Arg] = []
    for arg_type in spec:
        if arg_type == "A":
            args.append(Arg(False, p.parse_string(p.read_mandatory_arg())))
        elif arg_type == "O":
            args.append(Arg(True, p.parse_string(p.read_optional_arg())))
        elif arg_type == "V":
            args.append(Arg(False, TokenList([verbatim(p.read_mandatory_arg())])))
    return args


def _macro_token(name: str, args: list[Arg]) -> Token:
    return Token(TokenType.MACRO, name, args)


def _verbatim_arg(text: str, optional: bool = False) -> Arg:
    return Arg(optional, TokenList([verbatim(text)]))


# ---------------------------------------------------------------- macros


@dataclass(frozen=True)
class TypedMacro:
    """A macro whose arguments are described by a string of ``A``, ``O`` and ``V``."""

    spec: str = ""

    def read_args(self, p: Tokenizer, name: str) -> list[Token]:
        return [_macro_token(name, _read_typed_args(p, self.spec))]


@dataclass(frozen=True)
class LetMacro:
    """A macro which is replaced by another macro name."""

    target: str

    def read_args(self, p: Tokenizer, name: str) -> list[Token]:
        p.prepend(self.target.encode("utf-8"), f"{name} -> {self.target}")
        return []


@dataclass(frozen=True)
class DefMacro:
    """A user-defined macro with ``count`` arguments, expanded in place."""

    count: int
    body: str

    def read_args(self, p: Tokenizer, name: str) -> list[Token]:
        args = [p.read_mandatory_arg() for _ in range(self.count)]
        out = substitute_macro_args(self.body, args)
        p.prepend(out.encode("utf-8"), f"{name} macro body")
        return []


@dataclass(frozen=True)
class FuncMacro:
    """A macro whose arguments are read by a function ``func(p, name)``."""

    func: Callable[[Tokenizer, str], Optional[list[Token]]]

    def read_args(self, p: Tokenizer, name: str) -> list[Token]:
        return list(self.func(p, name) or [])


# ---------------------------------------------------------- environments


@dataclass(frozen=True)
class SimpleEnv:
    """An environment without arguments."""

    def read_args(self, p: Tokenizer, name: str) -> tuple[list[Token], Optional[IsEnd]]:
        return [_macro_token("\\begin", [_verbatim_arg(name)])], None


@dataclass(frozen=True)
class TypedEnv:
    """An environment whose arguments are described like those of TypedMacro."""

    spec: str = ""

    def read_args(self, p: Tokenizer, name: str) -> tuple[list[Token], Optional[IsEnd]]:
        args = [_verbatim_arg(name)] + _read_typed_args(p, self.spec)
        return [_macro_token("\\begin", args)], None


@dataclass(frozen=True)
class VerbatimEnv:
    """An environment whose body is kept verbatim in a macro token."""

    macro_name: str

    def read_args(self, p: Tokenizer, name: str) -> tuple[list[Token], Optional[IsEnd]]:
        body = p.read_until_string("\\end{" + name + "}")
        if body.startswith("\n"):
            body = body[1:]
        if body.endswith("\n"):
            body = body[:-1]
        return [_macro_token(self.macro_name, [_verbatim_arg(body)])], None


@dataclass(frozen=True)
class CollectEnv:
    """An environment whose body tokens are collected into one macro token."""

    macro_name: str

    def read_args(self, p: Tokenizer, name: str) -> tuple[list[Token], Optional[IsEnd]]:
        arg = p.read_optional_arg()
        args = [Arg(True, p.parse_string(arg))]

        def is_end(token: Token) -> bool:
            return is_macro(token, "\\end", name)

        return [_macro_token(self.macro_name, args)], is_end


SIMPLE_ENV = SimpleEnv()


# ------------------------------------------------------ macro functions


def parse_documentclass(p: Tokenizer, name: str) -> list[Token]:
    """Read ``\\documentclass`` and install the macros of the class."""
    options = p.read_optional_arg()
    cls = p.read_mandatory_arg()

    if cls == "article":
        p.macros["\\author"] = LetMacro("\\epubauthor")
        p.macros["\\maketitle"] = LetMacro("\\epubmaketitle")
        p.macros["\\section"] = LetMacro("\\epubsection")
        p.macros["\\subsection"] = LetMacro("\\epubsubsection")
        p.macros["\\title"] = LetMacro("\\epubtitle")
    elif cls == "jvbook":
        p.macros["\\author"] = LetMacro("\\epubauthor")
        p.macros["\\chapter"] = LetMacro("\\epubsection")
        p.macros["\\maketitle"] = LetMacro("\\epubmaketitle")
        p.macros["\\section"] = LetMacro("\\epubsubsection")
        p.macros["\\subsection"] = LetMacro("\\epubsubsubsection")
        p.macros["\\title"] = LetMacro("\\epubtitle")
    else:
        log.info("unknown document class %s", cls)

    return [_macro_token(name, [_verbatim_arg(options, True), _verbatim_arg(cls)])]


def parse_usepackage(p: Tokenizer, name: str) -> list[Token]:
    """Read ``\\usepackage``, loading each listed package; one token per package."""
    options = p.read_optional_arg()
    packages = p.read_mandatory_arg()

    res: list[Token] = []
    for pkg in packages.split(","):
        pkg = pkg.strip()
        load = PKG_INIT.get(pkg)
        if load is not None:
            load(p)
        else:
            log.info("unknown usepackage %r", pkg)
        res.append(_macro_token(name, [_verbatim_arg(options, True), _verbatim_arg(pkg)]))
    return res


def parse_def(p: Tokenizer, name: str) -> list[Token]:
    """Read ``\\def`` and define the new macro; produces no tokens.

    Macro names starting with ``\\epub`` cannot be redefined.
    """
    def_name = p.read_macro_name()

    count = 0
    while p.next():
        marker = f"#{count + 1}".encode("utf-8")
        if not p.peek().startswith(marker):
            break
        count += 1
        p.skip(len(marker))

    body = p.read_mandatory_arg()
    if not def_name.startswith("\\epub"):
        p.macros[def_name] = DefMacro(count=count, body=body)
    return []


def parse_hskip(p: Tokenizer, name: str) -> list[Token]:
    """Read ``\\hskip`` followed by an amount and a unit."""
    amount = p.read_number()
    p.skip_white_space()
    unit = p.read_unit()
    return [_macro_token(name, [_verbatim_arg(amount + unit)])]


def parse_verb(p: Tokenizer, name: str) -> list[Token]:
    """Read ``\\verb`` with its delimited, verbatim body."""
    if not p.next():
        raise EOFError("end of input after " + name)
    sep = p.peek()[0]
    p.skip(1)
    body = p.read_until_char(sep)
    return [_macro_token(name, [_verbatim_arg(body)])]


def parse_newtheorem(p: Tokenizer, name: str) -> list[Token]:
    """Read ``\\newtheorem`` and register the new theorem environment."""
    star = p.read_optional_star()
    env_name = p.read_mandatory_arg()
    shared = p.read_optional_arg()
    title = p.read_mandatory_arg()
    parent = p.read_optional_arg()

    p.environments[env_name] = TypedEnv("O")

    args = [
        Arg(True, star),
        _verbatim_arg(env_name),
        _verbatim_arg(shared, True),
        _verbatim_arg(title),
        _verbatim_arg(parent, True),
    ]
    return [_macro_token(name, args)]


def amsmath_declare_math_operator(p: Tokenizer, name: str) -> list[Token]:
    """Read ``\\DeclareMathOperator`` and register the new operator."""
    star = p.read_optional_star()
    operator_name = p.read_mandatory_arg()
    value = p.read_mandatory_arg()

    p.macros[operator_name] = TypedMacro("")

    args = [Arg(True, star), _verbatim_arg(operator_name), _verbatim_arg(value)]
    return [_macro_token(name, args)]


# ------------------------------------------------------------- packages


def add_amsfonts_macros(p: Tokenizer) -> None:
    p.macros["\\mathbb"] = TypedMacro("A")


def add_amsmath_macros(p: Tokenizer) -> None:
    p.macros["\\DeclareMathOperator"] = FuncMacro(amsmath_declare_math_operator)
    p.macros["\\eqref"] = DefMacro(count=1, body="(\\ref{#1})")

    for env in ("align", "align*", "cases", "equation*"):
        p.environments[env] = SIMPLE_ENV


def add_amsthm_macros(p: Tokenizer) -> None:
    p.macros["\\newtheorem"] = FuncMacro(parse_newtheorem)
    p.macros["\\theoremstyle"] = TypedMacro("V")


def add_graphicx_macros(p: Tokenizer) -> None:
    p.macros["\\includegraphics"] = TypedMacro("OA")


def add_tikz_macros(p: Tokenizer) -> None:
    p.environments["tikzpicture"] = CollectEnv("%tikz%")


PKG_INIT: dict[str, Callable[[Tokenizer], None]] = {
    "amsfonts": add_amsfonts_macros,
    "amsmath": add_amsmath_macros,
    "amsthm": add_amsthm_macros,
    "graphicx": add_graphicx_macros,
    "tikz": add_tikz_macros,
}


# ------------------------------------------------------------- helpers


def substitute_macro_args(body: str, args: list[str]) -> str:
    """Replace ``#1``, ``#2``, ... in ``body`` by the given arguments.

    ``##`` stands for a literal ``#``; references to missing arguments
    are dropped.
    """
    parts: list[str] = []
    part_start = 0
    num_start = -1
    hash_seen = False
    for pos, c in enumerate(body):
        if num_start >= 0:
            if c.isascii() and c.isdigit():
                continue
            num = int(body[num_start:pos])
            if 0 < num <= len(args):
                parts.append(args[num - 1])
            part_start = pos
            num_start = -1

        if hash_seen and c.isascii() and c.isdigit():
            num_start = pos
            hash_seen = False
        elif c == "#" and not hash_seen:
            parts.append(body[part_start:pos])
            part_start = pos + 1
            hash_seen = True
        else:
            hash_seen = False
    parts.append(body[part_start:])
    return "".join(parts)


def is_macro(tok: Token, name: str, *args: str) -> bool:
    """Check whether ``tok`` is the macro ``name`` with leading arguments ``args``."""
    if tok.type != TokenType.MACRO or tok.name != name:
        return False
    if len(tok.args) < len(args):
        return False
    return all(str(tok.args[i]) == arg for i, arg in enumerate(args))


# ------------------------------------------------------------ tokenizer


class LatexTokenizer(Tokenizer):
    """A Tokenizer which knows the built-in EPUB and LaTeX macros."""

    def __init__(self) -> None:
        super().__init__()
        self._add_builtin_macros()

    def _add_builtin_macros(self) -> None:
        m = self.macros

        # built-in EPUB support
        m["\\epubauthor"] = TypedMacro("A")
        m["\\epubcover"] = TypedMacro("A")
        m["\\epubmaketitle"] = TypedMacro("")
        m["\\epubsection"] = TypedMacro("OA")
        m["\\epubsubsection"] = TypedMacro("OA")
        m["\\epubtitle"] = TypedMacro("A")

        # TeX/LaTeX macros
        m["\\ "] = DefMacro(count=0, body=" ")
        m["\\\\"] = TypedMacro("O")
        m["\\def"] = FuncMacro(parse_def)
        m["\\documentclass"] = FuncMacro(parse_documentclass)
        m["\\end"] = TypedMacro("V")
        m["\\frac"] = TypedMacro("AA")
        m["\\hskip"] = FuncMacro(parse_hskip)
        m["\\label"] = TypedMacro("V")
        m["\\mbox"] = TypedMacro("A")
        m["\\ref"] = TypedMacro("V")
        m["\\textit"] = TypedMacro("A")
        m["\\usepackage"] = FuncMacro(parse_usepackage)
        m["\\verb"] = FuncMacro(parse_verb)
        for plain in (
            "\\,", "\\alpha", "\\approx", "\\beta", "\\bf", "\\bigl", "\\bigm",
            "\\bigr", "\\chi", "\\colon", "\\delta", "\\epsilon", "\\eta",
            "\\gamma", "\\in", "\\infty", "\\int", "\\iota", "\\it", "\\kappa",
            "\\lambda", "\\ldots", "\\mathcal", "\\mu", "\\neq", "\\nu",
            "\\omega", "\\phi", "\\pi", "\\psi", "\\rho", "\\sigma", "\\sum",
            "\\tau", "\\theta", "\\times", "\\to", "\\varepsilon", "\\varphi",
            "\\xi", "\\zeta", "\\{", "\\}",
        ):
            m[plain] = TypedMacro("")

        self.environments["document"] = SIMPLE_ENV
        self.environments["equation"] = SIMPLE_ENV
        self.environments["verbatim"] = VerbatimEnv("%verbatim%")


def parse_string(text: str) -> TokenList:
    """Tokenize ``text`` with a fresh LatexTokenizer."""
    p = LatexTokenizer()
    p.prepend(text.encode("utf-8"), "text")
    return TokenList(p.parse_tex())