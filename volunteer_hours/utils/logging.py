from __future__ import annotations

import logging
import sys
from typing import Union

FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: Union[str, int] = "INFO") -> None:
    """Configure the root logger once for CLI runs. Unknown level names fall back to INFO."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
