"""Command line entry point (``snap-stock``); see ``snap_stock.cli.main``."""
