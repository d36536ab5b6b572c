"""CLI entry point for dice-apply (``python -m dice_apply``)."""

from __future__ import annotations

from dice_apply.cli import main

if __name__ == "__main__":
    main()
