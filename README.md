# epublatex

`epublatex` turns a LaTeX document into an EPUB 3 e-book or a directory of
XHTML pages.

Running text is converted to HTML. Mathematical formulas and TikZ pictures
are typeset by a TeX installation and embedded as PNG images. Section and
theorem numbers, cross-references made with `\label` and `\ref`, the title
page and the table of contents are generated as well.

## Requirements

- Python 3.10 or later
- `pdflatex` with the `geometry`, `pdfrender`, `amsmath`, `amsfonts` and
  `tikz`/`standalone` packages
- Ghostscript (`gs`), used to turn the typeset PDF pages into images

## Installation

```
pip install .
```

## Usage

Convert a document to EPUB. The output file is named after the input, so
`book.tex` gives `book.epub`:

```
epublatex book.tex
```

Choose the output file yourself:

```
epublatex --output my-book.epub book.tex
```

Write XHTML files into a directory instead of an EPUB archive. Without
`--output` the directory is named after the input file (`book`):

```
epublatex --html book.tex
```

Progress is logged to standard error. If the conversion fails, the error is
logged and the command exits with status 1.

### Supported LaTeX

- Document classes `article` and `jvbook`: `\title`, `\author`,
  `\maketitle`, `\chapter`, `\section` and `\subsection`
- `\textit`, `\textbf`, `\it`, `\bf`, `\verb`, the `verbatim` environment,
  `\dots`, `~`, and ``` `` ``` / `''` quotation marks
- Inline `$...$` maths and the `equation`, `equation*` and `align*`
  environments; an `equation` with a `\label` gets a number that `\ref`
  can point to
- `\usepackage` for `amsmath`, `amsfonts`, `amsthm` (`\newtheorem`,
  `\theoremstyle`) and `tikz` (`tikzpicture`)
- `\def` macros with parameters, and `\include`
- `\epubcover{image}` adds a PNG or JPEG cover image to the book

Unknown macros are logged and left out of the output.

### Use from Python

```python
from epublatex.book import new_epub_writer
from epublatex.converter import convert

with open("book.epub", "wb") as out:
    with new_epub_writer(out, "my book identifier") as book:
        convert(book, "book.tex")
```

`epublatex.book.new_xhtml_writer(base_dir, identifier)` gives a book that
writes XHTML files into `base_dir`. A `Book` can also be filled directly
with `add_title`, `add_section`, `write_string` and `add_cover_image`, and
is finished with `close()`.

The identifier determines the book's UUID. The `epublatex` command always
uses the same fixed identifier.

## Limitations

- Rendered formulas and pictures are not cached: every run typesets them
  afresh with `pdflatex` and Ghostscript.
- `\includegraphics` (from `graphicx`) is read but no image is put into the
  book.
- Links made by `\ref` point to chapter files named `ch<N>.xhtml`.

## Running the tests

```
pip install ".[test]"
pytest
```