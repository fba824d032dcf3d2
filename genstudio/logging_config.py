import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """configure root logging once at startup"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # one INFO line per request otherwise, including every poll
    logging.getLogger("httpx").setLevel(logging.WARNING)
