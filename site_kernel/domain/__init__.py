"""
Pure domain layer.

This module contains pure value objects with NO dependencies on:
- Configuration files
- Time/clock (except the injectable Clock itself)
- I/O

All domain objects are immutable and deterministic.
"""

from site_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from site_kernel.domain.diagnostics import ScheduleWarning, WarningCode
from site_kernel.domain.phases import PHASE_ORDER, ConstructionPhase
from site_kernel.domain.rules import (
    PhaseDefinition,
    PhaseOverlapRule,
    PhaseRelation,
    SchedulingDefaults,
    SequencingRules,
    TradeDefinition,
    TradeLagRule,
)
from site_kernel.domain.schedule import (
    AggressiveTaskWindow,
    BufferType,
    BufferZone,
    CriticalChainBuffer,
    CriticalChainData,
    ProjectResource,
    ProjectResources,
    ProjectSchedule,
    ResourceType,
    ScheduleOptions,
    ScheduleTask,
    TaskFloat,
    TaskRelation,
    TaskResource,
    TeamSummary,
)
from site_kernel.domain.wbs import (
    CostMatch,
    WbsArticle,
    WbsChapter,
    WbsProject,
    WbsSubChapter,
)

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Diagnostics
    "ScheduleWarning",
    "WarningCode",
    # Taxonomy
    "ConstructionPhase",
    "PHASE_ORDER",
    # Rule book
    "PhaseDefinition",
    "PhaseOverlapRule",
    "PhaseRelation",
    "SchedulingDefaults",
    "SequencingRules",
    "TradeDefinition",
    "TradeLagRule",
    # Schedule
    "AggressiveTaskWindow",
    "BufferType",
    "BufferZone",
    "CriticalChainBuffer",
    "CriticalChainData",
    "ProjectResource",
    "ProjectResources",
    "ProjectSchedule",
    "ResourceType",
    "ScheduleOptions",
    "ScheduleTask",
    "TaskFloat",
    "TaskRelation",
    "TaskResource",
    "TeamSummary",
    # WBS
    "CostMatch",
    "WbsArticle",
    "WbsChapter",
    "WbsProject",
    "WbsSubChapter",
]
