"""Query libfabric provider discovery from the command line."""

__version__ = "0.1.0"
