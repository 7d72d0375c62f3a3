"""
Module entry point for: python -m qbank

Allows running the CLI directly as a module:
    python -m qbank import <file> [options]
    python -m qbank practice [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
