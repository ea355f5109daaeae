"""Internal constants shared across the library."""

from datetime import timedelta

#: A reported status is trusted for this long, then reads as unknown.
FRESHNESS_WINDOW = timedelta(minutes=30)

DEFAULT_TABLE = "mail_rooms"
REST_PATH_PREFIX = "/rest/v1"
USER_AGENT = "pymailroom"

# ------------------------------------------------------------------
# Decay tick interval (seconds)
# ------------------------------------------------------------------

DEFAULT_TICK_INTERVAL = 1.0
_TICK_MIN_S = 1.0
_TICK_MAX_S = 60.0


def validate_tick_interval(seconds: float) -> float:
    """Validate a decay tick interval.

    ``0`` disables the ticker (pull-based consumers recompute on read).
    Any other value must lie between 1 and 60 seconds.

    Raises :class:`ValueError` for anything else.
    """
    value = float(seconds)
    if value == 0:
        return value
    if not _TICK_MIN_S <= value <= _TICK_MAX_S:
        raise ValueError(f"tick interval must be 0 or between {_TICK_MIN_S} and {_TICK_MAX_S} seconds, got {value}")
    return value
