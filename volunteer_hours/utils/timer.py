from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

log = logging.getLogger(__name__)


@contextmanager
def timed(stage: str, timings: Optional[Dict[str, float]] = None) -> Iterator[None]:
    """Record wall time of a pipeline stage into `timings[stage]` (seconds)."""
    start = time.perf_counter()
    try:
        yield
    finally:
        dur = time.perf_counter() - start
        log.debug("Stage %s took %.3fs", stage, dur)
        if timings is not None:
            timings[stage] = timings.get(stage, 0.0) + dur
