from __future__ import annotations

import logging

from lyrics_sync.errors import UnsupportedFormat
from lyrics_sync.model import TimedDocument

from .kpoe import parse_kpoe_json
from .lrc import LAST_LINE_MS, parse_lrc
from .ttml import parse_ttml

logger = logging.getLogger(__name__)

FORMATS = ("lrc", "ttml", "json")


def detect_format(text: str) -> str:
    head = text.lstrip("\ufeff \t\r\n")
    if head.startswith("<"):
        return "ttml"
    if head.startswith("{"):
        return "json"
    return "lrc"


def parse_lyrics(text: str, fmt: str = "auto", *, lrc_last_line_ms: int = LAST_LINE_MS) -> TimedDocument | None:
    """
    Parse `text` in the given format ("auto" sniffs it).

    None or an empty document both mean "no lyrics"; only an unknown format
    name raises.
    """
    fmt_l = (fmt or "auto").lower()
    if fmt_l == "auto":
        fmt_l = detect_format(text)
        logger.debug("Detected lyrics format: %s", fmt_l)
    if fmt_l == "lrc":
        return parse_lrc(text, last_line_ms=lrc_last_line_ms)
    if fmt_l in ("ttml", "xml"):
        return parse_ttml(text.lstrip("\ufeff \t\r\n"))
    if fmt_l == "json":
        return parse_kpoe_json(text.lstrip("\ufeff"))
    raise UnsupportedFormat(f"Unknown lyrics format: {fmt}")
