"""Convert a LaTeX document into a book, in a tokenizing pass and two passes over the tokens."""

from __future__ import annotations

import base64
import hashlib
import io
import logging
from typing import Any, Optional

from .htmlwriter import HtmlWriter
from .latexmacros import (
    NO_BREAK_SPACE,
    XRef,
    install_builtin_macros,
    is_math_start,
    xref_normalise,
)
from .mathrender import MathRenderer
from .render import BookImage, BookImageType
from .section import SecNo
from .texmacros import LatexTokenizer
from .tikz import TikzRenderer
from .tokens import Token, TokenList, TokenType

log = logging.getLogger(__name__)

MATH_PREAMBLE = (
    "\\usepackage{amsfonts}",
    "\\usepackage{amsmath}",
    "\\DeclareMathOperator*{\\argmax}{arg\\,max}",
)


def _escape(text: str) -> str:
    """Escape the characters which are special in HTML."""
    return (
        text.replace("&", "&amp;")
        .replace("'", "&#39;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&#34;")
    )


class UnterminatedMathError(Exception):
    """The end of a maths environment was not found."""

    def __init__(self) -> None:
        super().__init__("maths environment not terminated")


class Converter:
    """Holds the state of one conversion from LaTeX into ``book``."""

    def __init__(self, book: Any) -> None:
        self.book = book
        self.source_dir = ""
        self.tokens: list[Token] = []

        self.images: dict[str, str] = {}
        self.labels: list[XRef] = []

        self.section = SecNo()
        self.counters: dict = {}
        self.macros: dict = {}
        self.envs: dict = {}
        self.env_stack: list[str] = []

        self.pkg_state: dict[str, str] = {}

        self.title = ""
        self.author = ""

        self._image_error: Optional[Exception] = None
        install_builtin_macros(self)

    def __enter__(self) -> "Converter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the stored tokens."""
        self.tokens = []

    # ------------------------------------------------------ tokenizing

    def tokenize(self, input_file_name: str) -> None:
        """Split the given LaTeX file, and the files it includes, into tokens."""
        toks = LatexTokenizer()
        try:
            toks.include(input_file_name)
            self.run_tokenizer(toks)
        finally:
            toks.close()

    def run_tokenizer(self, tokenizer: Any) -> None:
        """Store all tokens produced by ``tokenizer``."""
        self.tokens = list(tokenizer.parse_tex())
        self.source_dir = getattr(tokenizer, "base_dir", "") or ""

    # ---------------------------------------------------------- images

    def get_image(self, env: str, body: str) -> str:
        """Return the HTML showing the rendered image of ``body``, or ``""``."""
        key = env + "%" + body
        res = self.images.get(key)
        if res is None:
            log.warning("missing image for body %r", body)
            return ""
        return res

    def add_image(self, job: BookImage) -> None:
        """Add a rendered image to the book and remember the HTML showing it.

        Errors are remembered; the first one is raised at the end of pass 1.
        """
        if job.type == BookImageType.PNG:
            mime, fmt = "image/png", "PNG"
        else:
            mime, fmt = "image/jpeg", "JPEG"

        # try to make a stable name
        h = hashlib.shake_128()
        h.update(job.env.encode("utf-8"))
        h.update(b"\0")
        h.update(job.body.encode("utf-8"))
        raw_name = base64.urlsafe_b64encode(h.digest(5)).rstrip(b"=").decode("ascii")

        file = self.book.register_file(raw_name, mime, False)
        try:
            img = job.image
            if fmt == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            buf = io.BytesIO()
            img.save(buf, fmt)
            with self.book.create_file(file) as out:
                out.write(buf.getvalue())
        except Exception as exc:
            if self._image_error is None:
                self._image_error = exc
            return

        attrs = [' src="' + _escape(file.path) + '"']
        if job.css_class:
            attrs.append(' class="' + _escape(job.css_class) + '"')
        if job.alt:
            attrs.append(' alt="' + _escape(job.alt) + '"')
        if job.style:
            attrs.append(' style="' + job.style + '"')
        self.images[job.env + "%" + job.body] = "<img" + "".join(attrs) + "/>"

    # ---------------------------------------------------------- helpers

    def reset_counters(self, level: int, name: str) -> None:
        """Reset all counters whose parent is ``name``, e.g. at a new section."""
        for ctr in self.counters.values():
            if ctr.parent == name:
                ctr.value = 0
                ctr.prefix = str(SecNo(self.section[:level])) + "."

    def xref_lookup(self, pos: int) -> str:
        """Return the id of the label referring to token position ``pos``, or ``""``."""
        for label in self.labels:
            if label.pos == pos:
                return label.id
        return ""

    def convert_html(self, tokens: list[Token]) -> str:
        """Convert a list of tokens into HTML."""
        res: list[str] = []
        in_math = False
        math_tokens = TokenList()
        for token in tokens:
            is_dollar = token.type == TokenType.OTHER and token.name == "$"
            if is_dollar and not in_math:
                in_math = True
            elif is_dollar and in_math:
                in_math = False
                res.append(self.get_image("$", math_tokens.format_maths()))
                math_tokens = TokenList()
            elif in_math:
                math_tokens.append(token)
            elif token.type == TokenType.MACRO:
                m = self.macros.get(token.name)
                if m is not None:
                    res.append(m.html_output(token.args, self))
                else:
                    log.warning("unknown macro %r", token.name)
            elif token.type == TokenType.SPACE:
                res.append(" ")
            elif token.type == TokenType.WORD:
                res.append(token.name)
            elif token.type == TokenType.OTHER:
                if token.name == "~":
                    res.append(NO_BREAK_SPACE)
                elif token.name == "``":
                    res.append("<q>")
                elif token.name == "''":
                    res.append("</q>")
                else:
                    res.append(token.name)
        return "".join(res)

    # ------------------------------------------------------------ pass 1

    def pass1(self) -> None:
        """Render all formulas and TikZ pictures, and collect the cross references."""
        self.images = {}
        self._image_error = None

        labels: list[XRef] = []
        ref = -1
        ref_type = ""
        ref_name = ""

        math_renderer = MathRenderer(self.add_image)
        tikz_renderer = TikzRenderer(self.add_image)
        for line in MATH_PREAMBLE:
            math_renderer.add_preamble(line)

        math_end = None
        math_env = ""
        math_tokens = TokenList()
        math_label = ""

        # This loop must match the corresponding one in pass2().
        for pos, token in enumerate(self.tokens):
            if math_end is None:
                math_env, math_end = is_math_start(token, self.envs)
                if math_end is not None:
                    math_label = ""
                    continue
            else:
                if token.type == TokenType.EMPTY_LINE:
                    log.error(
                        "maths environment not terminated\n%s",
                        math_tokens.format_maths(),
                    )
                    raise UnterminatedMathError()
                if math_end(token):
                    math_renderer.add_formula(math_env, math_tokens.format_maths())
                    math_end = None
                    math_tokens = TokenList()
                elif (
                    token.type == TokenType.MACRO
                    and token.name == "\\label"
                    and not math_label
                ):
                    math_label = str(token.args[0])
                else:
                    math_tokens.append(token)

            if token.type != TokenType.MACRO:
                continue
            name = token.name
            if name == "\\epubsection":
                self.section.inc(1)
                self.reset_counters(1, "section")
                ref, ref_type, ref_name = pos, "Section", str(self.section)
            elif name == "\\epubsubsection":
                self.section.inc(2)
                self.reset_counters(2, "subsection")
                ref, ref_type, ref_name = pos, "Subsection", str(self.section)
            elif name == "%tikz%":
                tikz_renderer.add_picture(str(token.args[1]))
            elif name == "\\begin":
                env = self.envs.get(str(token.args[0]))
                if env is not None:
                    ref = pos
                    ref_type = env.prefix
                    ref_name = self.counters[env.counter].inc()
            elif name == "\\label":
                label = str(token.args[0])
                labels.append(
                    XRef(
                        label=label,
                        chapter=self.section[0] if self.section else 0,
                        id=xref_normalise(label, labels),
                        pos=ref,
                        type=ref_type,
                        name=ref_name,
                    )
                )
            else:
                m = self.macros.get(name)
                if m is not None:
                    # run for side-effects only
                    m.html_output(token.args, self)

        errors: list[Exception] = []
        for renderer in (math_renderer, tikz_renderer):
            try:
                renderer.finish()
            except Exception as exc:
                errors.append(exc)
        if errors:
            raise errors[0]
        if self._image_error is not None:
            raise self._image_error

        self.labels = labels

    # ------------------------------------------------------------ pass 2

    def pass2(self) -> None:
        """Convert the text to HTML and write it to the book."""
        w = HtmlWriter(self.book, self.source_dir)
        try:
            self._pass2_tokens(w)
        except BaseException:
            try:
                w.flush()
            except Exception:
                pass
            raise
        w.flush()

    def _pass2_tokens(self, w: HtmlWriter) -> None:
        math_end = None
        math_env = ""
        math_tokens = TokenList()
        math_label = ""

        self.section = SecNo()
        # This loop must match the corresponding one in pass1().
        for pos, token in enumerate(self.tokens):
            if math_end is None:
                math_env, math_end = is_math_start(token, self.envs)
                if math_end is not None:
                    math_label = ""
                    continue
            else:
                if math_end(token):
                    if math_label:
                        eq_id = eq_name = ""
                        for label in self.labels:
                            if label.label == math_label:
                                eq_id, eq_name = label.id, label.name
                        w.write_string("<br/>")
                        w.write_string(
                            f'<span class="latex-eqno" id="{eq_id}">({eq_name})</span>'
                        )
                    w.write_string(self.get_image(math_env, math_tokens.format_maths()))
                    math_end = None
                    math_tokens = TokenList()
                elif (
                    token.type == TokenType.MACRO
                    and token.name == "\\label"
                    and not math_label
                ):
                    math_label = str(token.args[0])
                else:
                    math_tokens.append(token)
                continue

            if token.type == TokenType.MACRO:
                self._pass2_macro(w, token, pos)
            elif token.type == TokenType.WORD:
                w.write_string(token.name)
            elif token.type == TokenType.OTHER and token.name == "{":
                w.stack.append(w.state.copy())
            elif token.type == TokenType.OTHER and token.name == "}":
                if not w.stack:
                    raise ValueError("unbalanced closing brace")
                old_state = w.state
                w.state = w.stack.pop()
                if w.state.is_bold != old_state.is_bold:
                    w.write_string("<b>" if w.state.is_bold else "</b>")
                if w.state.is_italic != old_state.is_italic:
                    w.write_string("<i>" if w.state.is_italic else "</i>")
            elif token.type == TokenType.OTHER:
                w.write_string(self.convert_html([token]))
            elif not self.env_stack:
                # no text outside the {document} environment
                pass
            elif token.type == TokenType.SPACE:
                w.end_word()
            elif token.type == TokenType.EMPTY_LINE:
                w.end_paragraph()

    def _pass2_macro(self, w: HtmlWriter, token: Token, pos: int) -> None:
        name = token.name
        if name == "\\epubcover":
            file_name = str(token.args[0])
            log.info("EPUB cover %s", file_name)
            w.add_cover_image(file_name)
        elif name == "\\epubmaketitle":
            w.write_title(self.title, self.author)
        elif name in ("\\epubsection", "\\epubsubsection"):
            level = 1 if name == "\\epubsection" else 2
            self.section.inc(level)
            self.reset_counters(level, "section" if level == 1 else "subsection")
            title = self.convert_html(token.args[1].value)
            w.add_section(level, title, self.xref_lookup(pos))
        elif name == "%tikz%":
            w.write_string(self.get_image("tikzpicture", str(token.args[1])))
        elif name == "\\begin":
            env_name = str(token.args[0])
            block_id = self.xref_lookup(pos) or f"pos-{pos}"

            classes: list[str] = []
            pfx = ""
            env = self.envs.get(env_name)
            if env is not None:
                classes = env.css_classes
                ctr = self.counters[env.counter]
                ctr.value += 1
                pfx = f"<b>{env.prefix}{NO_BREAK_SPACE}{ctr}.</b>"

            if self.env_stack:
                w.start_block(env_name, classes, block_id)
                if pfx:
                    w.write_string(pfx)
                    w.end_word()
            self.env_stack.append(env_name)
        elif name == "\\end":
            env_name = str(token.args[0])
            if self.env_stack and self.env_stack[-1] == env_name:
                self.env_stack.pop()
            elif env_name in self.env_stack:
                log.warning("environment %s was not closed", self.env_stack[-1])
                del self.env_stack[self.env_stack.index(env_name):]
            else:
                log.warning("environment %s was not open", env_name)
            if self.env_stack:
                w.end_block()
        elif name == "\\bf":
            if not w.state.is_bold:
                w.write_string("<b>")
                w.state.is_bold = True
        elif name == "\\it":
            if not w.state.is_italic:
                w.write_string("<i>")
                w.state.is_italic = True
        else:
            text = self.convert_html([token])
            if name == "%verbatim%":
                w.write_vertical(text)
            else:
                w.write_string(text)


def convert(book: Any, input_file_name: str) -> None:
    """Read the LaTeX file ``input_file_name`` and write its contents to ``book``."""
    with Converter(book) as conv:
        log.info("tokenizing ...")
        conv.tokenize(input_file_name)
        log.info("pass 1 ...")
        conv.pass1()
        log.info("pass 2 ...")
        conv.pass2()