"""
Module entry point for: python -m pdfviewer

Allows running the viewer tooling directly as a module:
    python -m pdfviewer info <source>
    python -m pdfviewer render <source> [options]
    python -m pdfviewer serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
