"""vsixsync command-line interface.

The application lives in ``cli.vsixsync.cli``; command modules under
``cli.commands`` import the output helpers from this package.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
