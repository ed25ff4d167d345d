"""browsegate: compile browser automation scripts and run them locally or remotely."""

__version__ = "0.1.0"
