"""
Module entry point for: python -m pdfraster

Allows running the converter directly as a module:
    python -m pdfraster html <pdf_path> [options]
    python -m pdfraster images <pdf_path> [options]
    python -m pdfraster serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
