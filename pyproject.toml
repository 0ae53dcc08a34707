[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "epublatex"
version = "0.1.0"
description = "Convert LaTeX documents into EPUB 3 books or plain XHTML pages"
requires-python = ">=3.10"
keywords = ["latex", "epub", "ebook", "xhtml", "converter", "tikz"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Text Processing :: Markup :: LaTeX",
]
dependencies = [
    "jinja2",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
epublatex = "epublatex.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["epublatex"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
