"""Duration normalization for battery report runtime estimates.

powercfg writes runtime estimates as ISO-8601 durations (``PT5H30M12S``,
occasionally ``P1DT2H``). The inventory class stores them as canonical
clock strings so the reporting side can convert them back to seconds:

  PT1H2M3S      -> "01:02:03"
  P1DT2H3M4S    -> "1:02:03:04"
  "" / None     -> "00:00:00"
  "garbage"     -> "00:00:00"

Normalization never raises. Upstream duration text is not always
well-formed, so anything that does not match falls back to zero.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Optional

logger = logging.getLogger(__name__)

ZERO_DURATION = "00:00:00"
ZERO_DURATION_WITH_DAYS = "0:00:00:00"

_ISO_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?=\d)(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:[.,]\d+)?)S)?)?$",
    re.IGNORECASE,
)

_CANONICAL_RE = re.compile(r"^(?:(\d+):)?(\d+):(\d{2}):(\d{2})$")


def _zero(day_aware: bool) -> str:
    return ZERO_DURATION_WITH_DAYS if day_aware else ZERO_DURATION


def normalize_duration(text: Optional[str], *, day_aware: bool = False) -> str:
    """Convert an ISO-8601 duration into ``HH:MM:SS`` or ``D:HH:MM:SS``.

    Fractional seconds are rounded to the nearest second (half up). Minute and
    second overflow carries into the next unit. The day-aware format is used
    whenever the input has a day component, or always when ``day_aware`` is
    set; otherwise hours are not folded into days (``PT30H`` -> ``30:00:00``).
    """
    if text is None or not str(text).strip():
        return _zero(day_aware)

    raw = str(text).strip()
    m = _ISO_DURATION_RE.match(raw)
    if not m or not any(m.group(k) for k in ("days", "hours", "minutes", "seconds")):
        logger.debug("Unrecognized duration %r, using zero default", raw)
        return _zero(day_aware)

    days = int(m.group("days") or 0)
    hours = int(m.group("hours") or 0)
    minutes = int(m.group("minutes") or 0)
    seconds = math.floor(float((m.group("seconds") or "0").replace(",", ".")) + 0.5)

    total = days * 86400 + hours * 3600 + minutes * 60 + seconds

    if day_aware or m.group("days") is not None:
        d, rem = divmod(total, 86400)
        h, rem = divmod(rem, 3600)
        mi, s = divmod(rem, 60)
        return f"{d}:{h:02d}:{mi:02d}:{s:02d}"

    h, rem = divmod(total, 3600)
    mi, s = divmod(rem, 60)
    return f"{h:02d}:{mi:02d}:{s:02d}"


def duration_to_seconds(canonical: Optional[str]) -> int:
    """Convert a canonical ``HH:MM:SS`` / ``D:HH:MM:SS`` string to seconds.

    Returns 0 for anything that is not a canonical duration.
    """
    if not canonical:
        return 0
    m = _CANONICAL_RE.match(str(canonical).strip())
    if not m:
        return 0
    days = int(m.group(1) or 0)
    hours, minutes, seconds = int(m.group(2)), int(m.group(3)), int(m.group(4))
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


__all__ = [
    "ZERO_DURATION",
    "ZERO_DURATION_WITH_DAYS",
    "normalize_duration",
    "duration_to_seconds",
]
