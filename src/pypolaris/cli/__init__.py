from pypolaris.cli.main import main

__all__ = ["main"]
