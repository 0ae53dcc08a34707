import re

from epublatex.latexmacros import (
    HORIZONTAL_ELLIPSIS,
    CounterInfo,
    Environment,
    FuncMacro,
    HtmlTagMacro,
    IgnoreMacro,
    SubstMacro,
    XRef,
    add_amsmath_macros,
    install_builtin_macros,
    is_math_start,
    m_epub_author,
    m_epub_title,
    m_newtheorem,
    m_ref,
    m_theoremstyle,
    m_use_package,
    m_verb,
    m_verbatim,
    xref_normalise,
)
from epublatex.tokens import Arg, Token, TokenList, TokenType, verbatim


class _Conv:
    def __init__(self):
        self.macros = {}
        self.envs = {}
        self.counters = {}
        self.pkg_state = {}
        self.labels = []
        self.title = ""
        self.author = ""

    def convert_html(self, tokens):
        return "".join(tok.name for tok in tokens)


def _arg(text, optional=False):
    return Arg(optional, TokenList([verbatim(text)]))


def _macro(name, *texts):
    return Token(TokenType.MACRO, name, [_arg(t) for t in texts])


def test_counter_inc_uses_prefix():
    ctr = CounterInfo(prefix="2.")
    assert ctr.inc() == "2.1"
    assert ctr.inc() == "2.2"
    assert ctr.value == 2
    assert str(ctr) == "2.2"


def test_xref_normalise_empty_label():
    assert xref_normalise("", []) == "x"


def test_xref_normalise_unique_suffix():
    used = [XRef(id="a")]
    assert xref_normalise("a", used) == "a2"
    used.append(XRef(id="a2"))
    assert xref_normalise("a", used) not in {"a", "a2"}


def test_xref_normalise_keeps_valid_label():
    assert xref_normalise("fig:one.b_c", []) == "fig:one.b_c"


def test_xref_normalise_produces_valid_id():
    for label in ["1abc", "a  b", "!!!", "x y z", "ünicode"]:
        res = xref_normalise(label, [])
        assert re.fullmatch(r"[A-Za-z][A-Za-z0-9_:.\-]*", res)
        assert "--" not in res


def test_is_math_start_dollar():
    env, end = is_math_start(Token(TokenType.OTHER, "$"), {})
    assert env == "$"
    assert end(Token(TokenType.OTHER, "$"))
    assert not end(Token(TokenType.WORD, "x"))


def test_is_math_start_equation():
    conv = _Conv()
    install_builtin_macros(conv)
    env, end = is_math_start(_macro("\\begin", "equation"), conv.envs)
    assert env == "equation*"
    assert end(_macro("\\end", "equation"))
    assert not end(_macro("\\end", "document"))


def test_is_math_start_other_env():
    conv = _Conv()
    install_builtin_macros(conv)
    assert is_math_start(_macro("\\begin", "document"), conv.envs) == ("", None)
    assert is_math_start(Token(TokenType.WORD, "hello"), conv.envs) == ("", None)


def test_builtin_macros():
    conv = _Conv()
    install_builtin_macros(conv)
    assert conv.macros["\\dots"].html_output([], conv) == HORIZONTAL_ELLIPSIS
    assert conv.macros["\\label"].html_output([_arg("x")], conv) == ""
    assert conv.envs["equation"].counter == "base@equation"
    assert conv.counters["base@equation"].value == 0


def test_html_tag_macro():
    conv = _Conv()
    args = [Arg(False, TokenList([Token(TokenType.WORD, "word")]))]
    assert HtmlTagMacro("i").html_output(args, conv) == "<i>word</i>"


def test_simple_macro_classes():
    conv = _Conv()
    assert IgnoreMacro().html_output([], conv) == ""
    assert SubstMacro("abc").html_output([], conv) == "abc"
    assert FuncMacro(lambda args, c: str(args[0])).html_output([_arg("q")], conv) == "q"


def test_title_and_author():
    conv = _Conv()
    m_epub_title([_arg("My Book")], conv)
    m_epub_author([_arg("A. Writer")], conv)
    assert conv.title == "My Book"
    assert conv.author == "A. Writer"


def test_verb_escapes():
    out = m_verb([_arg("<a&b>")], _Conv())
    assert out == '<span class="latex-verb">&lt;a&amp;b&gt;</span>'


def test_verbatim():
    out = m_verbatim([_arg("x < y")], _Conv())
    assert out == '<pre class="latex-verbatim">x &lt; y\n</pre>\n'


def test_ref_found_and_missing():
    conv = _Conv()
    conv.labels = [XRef(label="thm", chapter=3, id="thm", name="3.1")]
    assert m_ref([_arg("thm")], conv) == '<a href="ch3.xhtml#thm">3.1</a>'
    assert m_ref([_arg("nope")], conv) == '<span class="error">nope</span>'


def test_amsmath_package():
    conv = _Conv()
    add_amsmath_macros(conv, "")
    assert conv.envs["align*"].render_math == "align*"
    assert conv.macros["\\DeclareMathOperator"].html_output([], conv) == ""


def test_newtheorem_shares_counter():
    conv = _Conv()
    m_use_package([_arg("", True), _arg("amsthm")], conv)
    assert conv.pkg_state["amsthm@style"] == "plain"

    m_newtheorem(
        [_arg("", True), _arg("theorem"), _arg("", True), _arg("Abc"), _arg("section", True)],
        conv,
    )
    m_newtheorem(
        [_arg("", True), _arg("lemma"), _arg("theorem", True), _arg("Def"), _arg("", True)],
        conv,
    )
    theorem = conv.envs["theorem"]
    lemma = conv.envs["lemma"]
    assert theorem.prefix == "Abc"
    assert lemma.prefix == "Def"
    assert theorem.counter == lemma.counter
    assert conv.counters[theorem.counter].parent == "section"
    assert theorem.css_classes == ["amsthm-plain"]


def test_theoremstyle_changes_class():
    conv = _Conv()
    m_use_package([_arg("", True), _arg("amsthm")], conv)
    m_theoremstyle([_arg("definition")], conv)
    m_newtheorem(
        [_arg("", True), _arg("defn"), _arg("", True), _arg("Definition"), _arg("", True)],
        conv,
    )
    assert conv.envs["defn"].css_classes == ["amsthm-definition"]


def test_unknown_package_changes_nothing():
    conv = _Conv()
    m_use_package([_arg("", True), _arg("nosuchpackage")], conv)
    assert conv.macros == {}
    assert conv.envs == {}


def test_environment_defaults():
    env = Environment()
    assert env.css_classes == [] and env.render_math == ""