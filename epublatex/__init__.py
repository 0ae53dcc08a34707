"""Convert LaTeX documents into EPUB 3 books or XHTML pages."""

__version__ = "0.1.0"