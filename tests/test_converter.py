import pytest
from PIL import Image

from epublatex.book import new_xhtml_writer
from epublatex.converter import Converter, UnterminatedMathError, convert
from epublatex.latexmacros import CounterInfo, XRef
from epublatex.render import BookImage, BookImageType
from epublatex.section import SecNo
from epublatex.texmacros import LatexTokenizer, parse_string

DOC = (
    "\\documentclass{article}\n"
    "\\begin{document}\n"
    "\\section{Intro}\n"
    "Hello world.\n"
    "\\end{document}\n"
)


def _tokenized(src, book=None):
    conv = Converter(book)
    toks = LatexTokenizer()
    toks.prepend(src.encode("utf-8"), "test")
    conv.run_tokenizer(toks)
    toks.close()
    return conv


def test_new_theorem():
    src = (
        "\\usepackage{amsthm}%\n"
        "\\newtheorem{theorem}{Abc}[section]\n"
        "\\newtheorem{lemma}[theorem]{Def}"
    )
    conv = _tokenized(src)
    conv.pass1()
    conv.close()

    theorem = conv.envs["theorem"]
    assert theorem.prefix == "Abc"
    lemma = conv.envs["lemma"]
    assert lemma.prefix == "Def"
    assert theorem.counter == lemma.counter


def test_labels_and_ref():
    conv = _tokenized("\\documentclass{article}\n\\section{Intro}\\label{sec:intro}\n")
    conv.pass1()
    assert len(conv.labels) == 1
    label = conv.labels[0]
    assert label.label == "sec:intro"
    assert label.id == "sec:intro"
    assert label.type == "Section"
    assert label.name == "1"
    assert label.chapter == 1
    html = conv.convert_html(parse_string("\\ref{sec:intro}"))
    assert html == '<a href="ch1.xhtml#sec:intro">1</a>'


def test_unknown_ref_is_marked():
    conv = Converter(None)
    html = conv.convert_html(parse_string("\\ref{a<b}"))
    assert html == '<span class="error">a&lt;b</span>'


def test_convert_html_quotes_and_tilde():
    conv = Converter(None)
    assert conv.convert_html(parse_string("``a~b''")) == "<q>a\u00a0b</q>"


def test_unterminated_math():
    conv = _tokenized("$a\n\nb$")
    with pytest.raises(UnterminatedMathError):
        conv.pass1()


def test_get_image_missing_is_empty():
    conv = Converter(None)
    assert conv.get_image("$", "x") == ""


def test_reset_counters():
    conv = Converter(None)
    conv.counters["thm"] = CounterInfo(value=5, parent="section")
    conv.counters["other"] = CounterInfo(value=3, parent="")
    conv.section = SecNo([2, 4])
    conv.reset_counters(1, "section")
    assert conv.counters["thm"].value == 0
    assert str(conv.counters["thm"]) == "2.0"
    assert conv.counters["other"].value == 3


def test_xref_lookup():
    conv = Converter(None)
    conv.labels = [XRef(label="a", id="a", pos=3), XRef(label="b", id="b", pos=7)]
    assert conv.xref_lookup(7) == "b"
    assert conv.xref_lookup(4) == ""


def test_add_image(tmp_path):
    book = new_xhtml_writer(str(tmp_path), "test")
    conv = Converter(book)
    img = Image.new("RGBA", (6, 4), (0, 0, 0, 255))
    conv.add_image(
        BookImage(
            env="$",
            body="a<b",
            alt="a<b",
            css_class="imath",
            style="width: 1.00ex",
            image=img,
            type=BookImageType.PNG,
        )
    )
    html = conv.get_image("$", "a<b")
    assert html.startswith('<img src="img/')
    assert ' class="imath"' in html
    assert ' alt="a&lt;b"' in html
    assert ' style="width: 1.00ex"' in html
    src = html.split('src="')[1].split('"')[0]
    with Image.open(tmp_path / src) as saved:
        assert saved.size == (6, 4)
    book.close()


def test_pass2_writes_paragraph(tmp_path):
    out = tmp_path / "out"
    book = new_xhtml_writer(str(out), "test")
    conv = _tokenized(DOC, book)
    conv.pass1()
    conv.pass2()
    book.close()
    text = (out / "ch1.xhtml").read_text(encoding="utf-8")
    assert "<p>Hello world.</p>" in text
    assert "Intro" in text


def test_convert_file(tmp_path):
    src = tmp_path / "doc.tex"
    src.write_text(DOC, encoding="utf-8")
    out = tmp_path / "out"
    book = new_xhtml_writer(str(out), "test")
    convert(book, str(src))
    book.close()
    assert "<p>Hello world.</p>" in (out / "ch1.xhtml").read_text(encoding="utf-8")