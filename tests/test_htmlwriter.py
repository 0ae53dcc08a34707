import pytest

from epublatex.htmlwriter import OUTPUT_LINE_WIDTH, HtmlWriter, State


class _Book:
    def __init__(self):
        self.written = []
        self.titles = []
        self.sections = []
        self.covers = []

    def write_string(self, s):
        self.written.append(s)

    def add_title(self, title, authors):
        self.titles.append((title, authors))

    def add_section(self, level, title, sec_id):
        self.sections.append((level, title, sec_id))

    def add_cover_image(self, fd):
        self.covers.append(fd.read())


def _words(w, words):
    for word in words:
        w.write_string(word)
        w.end_word()


def test_simple_paragraph():
    book = _Book()
    w = HtmlWriter(book, ".")
    _words(w, ["Hello", "world"])
    w.flush()
    assert book.written == ["<p>Hello world</p>\n"]


def test_empty_flush_writes_nothing():
    book = _Book()
    HtmlWriter(book, ".").flush()
    assert book.written == []


def test_lines_are_wrapped():
    book = _Book()
    w = HtmlWriter(book, ".")
    words = [f"word{i % 10}" for i in range(60)]
    _words(w, words)
    w.flush()
    assert len(book.written) > 1
    for line in book.written[:-1]:
        assert len(line.rstrip("\n")) <= OUTPUT_LINE_WIDTH
    text = "".join(book.written)
    assert text.startswith("<p>") and text.endswith("</p>\n")
    inner = text[len("<p>"):-len("</p>\n")]
    assert inner.split() == words


def test_no_break_space_word():
    book = _Book()
    w = HtmlWriter(book, ".")
    w.write_string("a\u00a0b")
    w.flush()
    assert book.written == ['<p><span class="latex-nw">a\u00a0b</span></p>\n']


def test_bold_and_italic_state():
    book = _Book()
    w = HtmlWriter(book, ".")
    w.state = State(is_italic=True, is_bold=True)
    w.write_string("x")
    w.flush()
    assert book.written == ["<p><i><b>x</i></b></p>\n"]


def test_state_copy_is_independent():
    s = State(is_bold=True)
    c = s.copy()
    c.is_bold = False
    assert s.is_bold is True


def test_blocks():
    book = _Book()
    w = HtmlWriter(book, ".")
    w.start_block("theorem", ["amsthm-plain"], "thm1")
    _words(w, ["text"])
    w.end_block()
    assert book.written == [
        '<div id="thm1" class="latex-block theorem amsthm-plain">\n',
        "<p>text</p>\n",
        "</div>\n",
    ]


def test_block_without_id():
    book = _Book()
    w = HtmlWriter(book, ".")
    w.start_block("proof", [], "")
    assert book.written == ['<div class="latex-block proof">\n']


def test_vertical_material_continues_paragraph():
    book = _Book()
    w = HtmlWriter(book, ".")
    _words(w, ["a"])
    w.write_vertical("<pre>v</pre>\n")
    w.write_string("b")
    w.end_word()
    w.flush()
    assert book.written[0] == "<p>a</p>\n"
    assert book.written[1] == "<pre>v</pre>\n"
    assert book.written[2].startswith('<p class="cont">b')


def test_title_and_section():
    book = _Book()
    w = HtmlWriter(book, ".")
    _words(w, ["pending"])
    w.write_title("T", "Someone")
    w.add_section(1, "Intro", "sec-intro")
    assert book.written == ["<p>pending</p>\n"]
    assert book.titles == [("T", ["Someone"])]
    assert book.sections == [(1, "Intro", "sec-intro")]


def test_cover_image_read_from_base_dir(tmp_path):
    (tmp_path / "cover.png").write_bytes(b"imagedata")
    book = _Book()
    HtmlWriter(book, str(tmp_path)).add_cover_image("cover.png")
    assert book.covers == [b"imagedata"]


def test_cover_image_missing(tmp_path):
    w = HtmlWriter(_Book(), str(tmp_path))
    with pytest.raises(FileNotFoundError):
        w.add_cover_image("missing.png")