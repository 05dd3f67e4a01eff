"""Allow `python -m zerotouch_cli`."""

from .main import main

main()
