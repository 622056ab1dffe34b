"""Main entry point when executing terminuscli as a package.

This allows running the package using python -m terminuscli.
"""

from terminuscli.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
