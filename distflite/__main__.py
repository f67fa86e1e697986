"""Module entrypoint for running distflite as ``python -m distflite``."""

from __future__ import annotations

from distflite.cli import main


if __name__ == "__main__":
    main()
