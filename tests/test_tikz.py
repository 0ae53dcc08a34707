import subprocess
from pathlib import Path
from unittest import mock

import pytest
from PIL import Image

from epublatex.render import BookImageType
from epublatex.tikz import TikzRenderer

PICTURE = "\\draw (0,0) -- (1,1);"


@pytest.fixture
def tools():
    record = {"tex": [], "fail": False}

    def run(cmd, cwd=None, **kwargs):
        if record["fail"]:
            raise subprocess.CalledProcessError(1, cmd, output=b"")
        if cmd[0] == "pdflatex":
            record["tex"].append(Path(cwd, "job.tex").read_text(encoding="utf-8"))
            Path(cwd, "job.pdf").write_text("pdf")
        elif cmd[0] == "gs":
            Image.new("RGBA", (300, 40)).save(Path(cwd, "img1.png"))
        return subprocess.CompletedProcess(cmd, 0, b"")

    with mock.patch("subprocess.run", new=run):
        yield record


def test_picture_is_delivered(tools):
    out = []
    r = TikzRenderer(out.append)
    r.add_picture(PICTURE)
    r.finish()
    assert len(out) == 1
    job = out[0]
    assert job.env == "tikzpicture"
    assert job.css_class == "tikzpicture"
    assert job.body == PICTURE
    assert job.alt == PICTURE
    assert job.type == BookImageType.PNG
    assert job.image.size == (300, 40)
    assert job.style == "width: 16.79ex"


def test_duplicate_picture_rendered_once(tools):
    out = []
    r = TikzRenderer(out.append)
    r.add_picture(PICTURE)
    r.add_picture(PICTURE)
    r.finish()
    assert len(out) == 1
    assert len(tools["tex"]) == 1


def test_long_picture_alt_text(tools):
    out = []
    picture = "\\draw " + "(0,0) -- " * 10 + "(1,1);"
    r = TikzRenderer(out.append)
    r.add_picture(picture)
    r.finish()
    assert out[0].alt == "[image]"
    assert out[0].body == picture


def test_tex_source(tools):
    r = TikzRenderer(lambda job: None)
    r.add_preamble("\\usetikzlibrary{decorations.pathreplacing}")
    r.add_picture(PICTURE)
    r.finish()
    tex = tools["tex"][0]
    assert tex.startswith(
        "\\documentclass[tikz]{standalone}\n"
        "\\usetikzlibrary{decorations.pathreplacing}\n"
    )
    assert "\\begin{tikzpicture}\n" + PICTURE + "\n\\end{tikzpicture}\n" in tex
    assert tex.endswith("\\end{document}\n")


def test_failed_render_delivers_nothing(tools):
    tools["fail"] = True
    out = []
    r = TikzRenderer(out.append)
    r.add_picture(PICTURE)
    r.finish()
    assert out == []


def test_make_key(tools):
    r = TikzRenderer(lambda job: None)
    key = r.make_key(PICTURE)
    r.finish()
    prefix = "tikz:300:4.305540:"
    assert key.startswith(prefix)
    assert len(key) - len(prefix) == 56
    assert key == r.make_key(PICTURE)
    assert key != r.make_key(PICTURE + " ")