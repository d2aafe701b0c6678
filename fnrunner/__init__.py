"""fnrunner: run functions in ephemeral containers."""

__version__ = "0.1.0"
