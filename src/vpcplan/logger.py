import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logger(name: str = "vpcplan", verbose: bool = False) -> logging.Logger:
    """
    Returns the shared logger. Warnings only by default, so plan output stays
    readable; `--verbose` switches to DEBUG and shows each API operation.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    if not logger.handlers:
        # stderr, so `--json` on stdout stays parseable
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger


logger = setup_logger()
