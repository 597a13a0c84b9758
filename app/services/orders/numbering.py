"""
Order Number Generation

Human-readable order numbers look like CP2610180042:

    CP | 26 | 10 | 18 | 042
    prefix, 2-digit year, month, day, per-day sequence (zero-padded to 3)

The sequence itself comes from the repository's atomic per-day counter;
this module only owns the calendar key and the formatting.
"""

import re
from datetime import datetime

SEQUENCE_WIDTH = 3


def day_key(moment: datetime) -> str:
    """Calendar-day key (YYMMDD) the daily sequence is reset on."""
    return moment.strftime("%y%m%d")


def format_order_number(prefix: str, day: str, sequence: int) -> str:
    """
    Build the order number for a given day and sequence value.

    Sequences past 999 keep counting with more digits rather than wrapping,
    so numbers stay unique and increasing within the day.
    """
    if sequence < 1:
        raise ValueError("Sequence starts at 1")
    return f"{prefix}{day}{sequence:0{SEQUENCE_WIDTH}d}"


def order_number_pattern(prefix: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}\d{{2}}\d{{2}}\d{{2}}\d{{{SEQUENCE_WIDTH},}}$")
