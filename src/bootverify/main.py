"""Main module for bootverify."""

import logging
import os
import sys

from bootverify.cli import run


def setup_logging(verbose: bool = False) -> None:
    """Configure diagnostic logging to stderr.

    The staged progress log and report are printed separately; this only
    controls the diagnostic stream.
    """
    # Set level from env var, default to WARNING
    level = os.environ.get("BOOTVERIFY_LOG_LEVEL", "WARNING").upper()
    if verbose:
        level = "DEBUG"

    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


def main() -> None:
    """Entry point for the bootverify command."""
    sys.exit(run(configure_logging=setup_logging))


if __name__ == "__main__":
    main()
