from __future__ import annotations

import logging
import os


def setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    # Allow env override for e.g. scripted runs
    level_name = os.getenv("LYRICS_SYNC_LOG_LEVEL")
    if level_name:
        resolved = logging.getLevelName(level_name.upper())
        if isinstance(resolved, int):
            level = resolved

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
