"""Non-fatal diagnostics collected while building and analysing schedules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WarningCode(str, Enum):
    """Machine-readable code for a recoverable scheduling condition."""

    INVALID_QUANTITY = "INVALID_QUANTITY"
    UNMATCHED_COST = "UNMATCHED_COST"
    UNCLASSIFIED_PHASE = "UNCLASSIFIED_PHASE"
    INCONSISTENT_DATES = "INCONSISTENT_DATES"
    UNKNOWN_TASK = "UNKNOWN_TASK"
    PERCENT_OUT_OF_RANGE = "PERCENT_OUT_OF_RANGE"
    CAPACITY_UNCONSTRAINED = "CAPACITY_UNCONSTRAINED"
    MISSING_ACTUAL_COST = "MISSING_ACTUAL_COST"


@dataclass(frozen=True)
class ScheduleWarning:
    """
    A recoverable condition, recorded instead of raised.

    ``subject`` names the offending entity (article code, task uid) so a
    caller can point the user at it without parsing ``message``.
    """
    code: WarningCode
    subject: str
    message: str
