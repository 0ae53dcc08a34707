"""Templates used to generate the EPUB and XHTML output files.

The first template name passed to load_templates() is the one rendered;
a name starting with ``config/`` selects the output flavour (EPUB or
plain XHTML).  Templates see two variables: ``book``, the book being
written, and ``this``, data specific to the file being generated.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import jinja2


def format_list(items: Sequence[str] | None) -> str:
    """Join items as "a, b and c"."""
    items = list(items or [])
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + " and " + items[-1]


_BOOK_CSS = """\
@namespace epub "http://www.idpf.org/2007/ops";

body {
    margin: 1in auto;
    max-width: 32em;
    text-align: justify;
    -webkit-hyphens: auto;
    -ms-hyphens: auto;
    hyphens: auto;
}
h1, h2, h3, h4, h5, h6 {
    text-align: left;
}

#cover-image {
    margin: 0;
    border: none;
    padding: 0;
    max-width: 100%;
}

.epub-secno {
    margin-right: 1em;
}

.error {
    text-decoration: line-through;
}

.imath {
    display: inline-block;
    margin: 0;
    padding: 0;
    vertical-align: middle;
    height: auto;
}
.dmath {
    display: block;
    margin: 3ex auto;
    padding: 0;
    height: auto;
}

.latex-nw {
    white-space: nowrap;
}
.latex-block {
    margin: 1ex 0;
}
.latex-eqno {
    float: right;
    padding-top: 1.5ex;
}
.latex-verb {
    font-family: monospace;
    white-space: pre;
}
.latex-verbatim {
    margin: 4ex 0;
}
"""

_CONFIG_EPUB = """\
{% macro xml_decl() %}<?xml version="1.0" encoding="utf-8"?>
{% endmacro %}
{% macro xmlns_epub() %} xmlns:epub="http://www.idpf.org/2007/ops"{% endmacro %}
{% macro xhtml_lang(book) %}{% if book.language %} xml:lang="{{ book.language }}" \
lang="{{ book.language }}"{% endif %}{% endmacro %}
{% macro stylesheets(book) %}<link rel="stylesheet" type="text/css" href="{{ book.css_path }}"/>
{% endmacro %}
{% macro epub_type(value) %} epub:type="{{ value }}"{% endmacro %}
"""

_CONFIG_XHTML = """\
{% macro xml_decl() %}{% endmacro %}
{% macro xmlns_epub() %}{% endmacro %}
{% macro xhtml_lang(book) %}{% if book.language %} xml:lang="{{ book.language }}" \
lang="{{ book.language }}"{% endif %}{% endmacro %}
{% macro stylesheets(book) %}<link rel="stylesheet" type="text/css" href="{{ book.css_path }}"/>
{% endmacro %}
{% macro epub_type(value) %}{% endmacro %}
"""

_PARTS_XHTML = """\
{% macro head(cfg, book, title="", body_attributes="") -%}
{{ cfg.xml_decl() }}<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml"{{ cfg.xmlns_epub() }}{{ cfg.xhtml_lang(book) }}>
<head>
{{ title }}<meta charset="utf-8"/>
{{ cfg.stylesheets(book) }}</head>
<body{{ body_attributes }}>
{% endmacro %}
{%- macro tail() -%}
</body>
</html>
{% endmacro %}
"""

_IMPORTS = """\
{% import config as cfg -%}
{% import "parts/xhtml" as xhtml -%}
"""

_CHAPTER_HEAD = _IMPORTS + """\
{% set title -%}
<title>{{ this.title }}</title>
{% endset -%}
{{ xhtml.head(cfg, book, title=title) }}"""

_FRONT_HEAD = _IMPORTS + "{{ xhtml.head(cfg, book) }}"

_TAIL = """\
{% import "parts/xhtml" as xhtml -%}
{{ xhtml.tail() }}"""

_COVER = _IMPORTS + """\
{% set title -%}
<title>Cover</title>
{% endset -%}
{{ xhtml.head(cfg, book, title=title, body_attributes=' id="cover"' ~ cfg.epub_type("cover")) -}}
<img id="cover-image" alt="{{ book.title|e }}" src="{{ this.cover_image|e }}"/>
{{ xhtml.tail() }}"""

_TITLE = _IMPORTS + """\
{% set title -%}
<title>{{ book.title }}</title>
{% endset -%}
{{ xhtml.head(cfg, book, title=title, \
body_attributes=' id="titlepage"' ~ cfg.epub_type("frontmatter titlepage")) -}}
<h1>{{ book.title|e }}</h1>
{% if book.authors %}<p>by {{ book.authors|formatlist|e }}</p>
{% endif %}{{ xhtml.tail() }}"""

_NAV = _IMPORTS + """\
{% set title -%}
<title>EPUB 3 Navigation Document</title>
{% endset -%}
{{ xhtml.head(cfg, book, title=title) -}}
<h1>Table of Contents</h1>
<nav{{ cfg.epub_type("toc") }}>
{%- for x in book.nav %}{% for _ in range(x.up) %}
<ol>
<li>{% else %}</li><li>{% endfor %}<a href="{{ x.path }}#{{ x.id }}">{{ x.title }}</a>\
{% for _ in range(x.down) %}</li>
</ol>
{% endfor %}{% endfor %}
</nav>
{{ xhtml.tail() }}"""

_SECTION_HEAD = """\
{% import config as cfg -%}
<section class="h{{ this.level }}">
<h{{ this.level }} id="{{ this.id }}"><span class="epub-secno">{{ this.sec_no }}</span>
<span class="epub-title"{{ cfg.epub_type("title") }}>{{ this.title }}</span></h{{ this.level }}>
"""

_CONTAINER = """\
<?xml version="1.0" encoding="utf-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{{ this.content_name }}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

_CONTENT_OPF = """\
<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf"
\t version="3.0"
\t xml:lang="{{ book.language }}"
\t unique-identifier="pub-id">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="pub-id">urn:uuid:{{ book.uuid }}</dc:identifier>
    <dc:title>{{ book.title }}</dc:title>{% for author in book.authors or () %}
    <dc:creator>{{ author }}</dc:creator>{% endfor %}
    <dc:language>{{ book.language }}</dc:language>
    <meta property="dcterms:modified">{{ book.last_modified }}</meta>
  </metadata>
  <manifest>{% for f in book.files.values() %}
    <item id="{{ f.id }}" href="{{ f.path }}" media-type="{{ f.media_type }}"
      {%- if f.path == book.nav_path %} properties="nav"{% endif -%}
      {%- if f.id == book.cover_image_id %} properties="cover-image"{% endif -%}
      />{% endfor %}
  </manifest>
  <spine>{% for f in book.spine %}
    <itemref idref="{{ f.id }}"
      {%- if f.id == book.cover_id %} linear="no"{% endif -%}
      />{% endfor %}
  </spine>
</package>
"""

TEMPLATE_FILES: dict[str, str] = {
    "book.css": _BOOK_CSS,
    "chapter-head.xhtml": _CHAPTER_HEAD,
    "chapter-tail.xhtml": _TAIL,
    "config/epub": _CONFIG_EPUB,
    "config/xhtml": _CONFIG_XHTML,
    "container.xml": _CONTAINER,
    "content.opf": _CONTENT_OPF,
    "cover.xhtml": _COVER,
    "front-head.xhtml": _FRONT_HEAD,
    "front-tail.xhtml": _TAIL,
    "nav.xhtml": _NAV,
    "parts/xhtml": _PARTS_XHTML,
    "section-head.xhtml": _SECTION_HEAD,
    "section-tail.xhtml": "</section>\n",
    "title.xhtml": _TITLE,
}


def load_templates(names: Iterable[str]) -> jinja2.Template:
    """Load the first named template, configured by any ``config/...`` name."""
    names = list(names)
    if not names:
        raise ValueError("no template names given")

    env = jinja2.Environment(
        loader=jinja2.DictLoader(TEMPLATE_FILES),
        keep_trailing_newline=True,
        autoescape=False,
        undefined=jinja2.StrictUndefined,
    )
    env.filters["formatlist"] = format_list
    configs = [name for name in names[1:] if name.startswith("config/")]
    if configs:
        env.globals["config"] = configs[-1]

    for name in names[1:]:
        env.get_template(name)
    return env.get_template(names[0])


def render_templates(names: Iterable[str], this: Any, book: Any) -> str:
    """Render the templates for ``book``, with file-specific data ``this``."""
    return load_templates(names).render(this=this, book=book)