#!/usr/bin/env python
"""Command line entry point for the consulate project."""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'consulate.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "Django is not importable. Install the project (pip install -e .) "
            "inside the active virtual environment first."
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
