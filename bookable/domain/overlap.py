"""
Interval overlap primitives used by slot generation and conflict checks.
"""

from pendulum import DateTime, Duration, duration


def overlaps(a_start: DateTime, a_end: DateTime, b_start: DateTime, b_end: DateTime) -> bool:
    """
    Check whether ``[a_start, a_end)`` and ``[b_start, b_end)`` share time.

    Ranges that merely touch (``a_end == b_start``) are free, so back-to-back
    bookings are allowed. Ranges with the same start always overlap.
    """
    return a_start < b_end and b_start < a_end


def overlaps_with_buffer(
    candidate_start: DateTime,
    candidate_end: DateTime,
    event_start: DateTime,
    event_end: DateTime,
    buffer_minutes: int,
) -> bool:
    """Pad the existing event outward by ``buffer_minutes`` and check overlap."""
    pad: Duration = duration(minutes=buffer_minutes)
    return overlaps(candidate_start, candidate_end, event_start - pad, event_end + pad)
