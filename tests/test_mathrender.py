import pytest
from PIL import Image

from epublatex.mathrender import MathRenderer, crop_displayed, crop_inline

OPAQUE = (0, 0, 0, 255)


def _image(width, height, *boxes):
    img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    for box in boxes:
        img.paste(OPAQUE, box)
    return img


def test_make_key_format():
    renderer = MathRenderer(lambda job: None)
    try:
        assert renderer.make_key("$", "x^2") == "288%4.305540%$%x^2"
        assert renderer.make_key("align*", "a") != renderer.make_key("equation*", "a")
    finally:
        renderer.finish()


def test_invalid_environment_rejected():
    renderer = MathRenderer(lambda job: None)
    try:
        with pytest.raises(ValueError):
            renderer.add_formula("bad%env", "x")
    finally:
        renderer.finish()


def test_finish_without_formulas_delivers_nothing():
    out = []
    renderer = MathRenderer(out.append)
    renderer.add_preamble("\\usepackage{amsmath}")
    renderer.finish()
    assert out == []


def test_crop_inline_symmetric():
    # marker in rows 10..14 at the left, formula in columns 20..24, rows 8..16
    img = _image(40, 30, (0, 10, 6, 15), (20, 8, 25, 17))
    res = crop_inline(img)
    assert res.size == (25 - 20, 17 - 8)
    assert res.getbbox() == (0, 0, res.width, res.height)


def test_crop_inline_centres_on_marker():
    marker_top, marker_bottom = 10, 14
    formula_top = 5
    img = _image(40, 30, (0, marker_top, 6, marker_bottom + 1), (20, formula_top, 25, 17))
    res = crop_inline(img)
    above = marker_top - formula_top
    marker_height = marker_bottom - marker_top + 1
    assert res.height == above + marker_height + above
    assert res.width == 5
    # the formula starts at the top of the crop window
    assert res.getbbox()[1] == 0


def test_crop_inline_without_marker():
    img = _image(20, 20, (10, 5, 15, 10))
    with pytest.raises(ValueError):
        crop_inline(img)


def test_crop_displayed_keeps_horizontal_centre():
    img = _image(40, 20, (10, 3, 15, 8))
    res = crop_displayed(img)
    assert res.size == (40 - 2 * 10, 8 - 3)
    assert res.getbbox() == (0, 0, 5, 5)


def test_crop_displayed_full_width():
    img = _image(30, 10, (0, 2, 30, 4))
    res = crop_displayed(img)
    assert res.size == (30, 2)


def test_crop_displayed_empty_image():
    with pytest.raises(ValueError):
        crop_displayed(_image(10, 10))