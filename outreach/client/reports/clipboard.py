from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Clipboard = Callable[[str], None]


def copy_text(text: str, clipboard: Optional[Clipboard]) -> bool:
    """Best-effort copy. A failing clipboard is logged and reported as False."""
    if not text or clipboard is None:
        return False
    try:
        clipboard(text)
    except Exception as e:
        logger.warning("Clipboard copy failed: %s", e)
        return False
    return True
