import zipfile

import pytest

from epublatex.cli import main

DOC = (
    "\\documentclass{article}\n"
    "\\begin{document}\n"
    "\\section{Intro}\n"
    "Hello world.\n"
    "\\end{document}\n"
)


def _write_doc(tmp_path):
    src = tmp_path / "doc.tex"
    src.write_text(DOC, encoding="utf-8")
    return src


def test_html_output(tmp_path):
    src = _write_doc(tmp_path)
    out = tmp_path / "html"
    assert main(["--html", "--output", str(out), str(src)]) == 0
    assert "Hello world." in (out / "ch1.xhtml").read_text(encoding="utf-8")


def test_default_epub_name(tmp_path, monkeypatch):
    src = _write_doc(tmp_path)
    monkeypatch.chdir(tmp_path)
    assert main([str(src)]) == 0
    with zipfile.ZipFile(tmp_path / "doc.epub") as zf:
        assert zf.namelist()[0] == "mimetype"
        assert zf.read("mimetype") == b"application/epub+zip"
        assert "OEBPS/ch1.xhtml" in zf.namelist()


def test_default_html_name(tmp_path, monkeypatch):
    src = _write_doc(tmp_path)
    monkeypatch.chdir(tmp_path)
    assert main(["--html", str(src)]) == 0
    assert (tmp_path / "doc" / "ch1.xhtml").is_file()


def test_missing_argument():
    with pytest.raises(SystemExit) as info:
        main([])
    assert info.value.code == 2


def test_missing_input_file(tmp_path):
    with pytest.raises(SystemExit) as info:
        main(["--html", "--output", str(tmp_path / "o"), str(tmp_path / "nope.tex")])
    assert info.value.code == 1