"""terminuscli: command-line client for the Pantheon hosting control API."""

__version__ = "0.1.0"
