"""
Module: site_engines
Responsibility:
    Package entrypoint that re-exports all public symbols from the pure
    scheduling engine sub-modules.  This is the canonical import surface
    for callers that build, analyse and track construction schedules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import site_kernel (and sibling engine modules).
    MUST NOT import site_config; rule books are passed in as arguments.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Data dates are explicit parameters; baseline capture receives a Clock.
    - Decimal-only arithmetic for money, hours and indices.
    - Determinism: identical inputs always produce identical outputs,
      including ordering.

Failure modes:
    - ScheduleInputError subclasses for structurally malformed input.
    - ValueError propagated from value objects on invalid construction.

Audit relevance:
    Every engine entry point is traced via the ``@traced_engine`` decorator
    (see ``site_engines.tracer``), emitting SITE_ENGINE_TRACE log records
    that include engine name, version, input fingerprint, and duration.

Usage:
    from site_config import load_rulebook
    from site_engines import generate_schedule, optimize_site_capacity
    from site_engines import capture_baseline, compute_evm_snapshot
"""

from site_kernel.logging_config import get_logger

logger = get_logger("engines")

from site_engines.capacity import (
    Bottleneck,
    BottleneckKind,
    BottleneckSeverity,
    CapacityPoint,
    OptimizationSuggestion,
    OptimizedSchedule,
    ScheduleAdjustment,
    SiteCapacityConstraints,
    SuggestionType,
    build_capacity_timeline,
    classify_severity,
    detect_phase_conflicts,
    level_resources,
    optimize_site_capacity,
)
from site_engines.critical_chain import (
    aggressive_duration,
    buffer_status,
    build_critical_chain,
    classify_zone,
    fever_chart_zone,
    update_buffer_consumption,
)
from site_engines.critical_path import (
    CriticalPathResult,
    TaskGraph,
    analyze_critical_path,
)
from site_engines.earned_value import (
    ActualCostMode,
    BaselineTask,
    BaselineValidation,
    EvmBaseline,
    HealthStatus,
    ProjectEvmSnapshot,
    SCurvePoint,
    TaskEvmMetrics,
    TaskProgress,
    TaskStatus,
    TaskStatusCounts,
    capture_baseline,
    classify_health,
    compute_evm_snapshot,
    generate_s_curve,
    planned_value_at,
    validate_baseline,
)
from site_engines.resources import (
    ResourceBucket,
    aggregate_resources,
    finalize_resources,
    merge_resources,
    partial_resources,
    task_resources,
)
from site_engines.sequencer import (
    PlannedArticle,
    crew_and_duration,
    generate_schedule,
    plan_article,
    resolve_phase,
)
from site_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Capacity
    "Bottleneck",
    "BottleneckKind",
    "BottleneckSeverity",
    "CapacityPoint",
    "OptimizationSuggestion",
    "OptimizedSchedule",
    "ScheduleAdjustment",
    "SiteCapacityConstraints",
    "SuggestionType",
    "build_capacity_timeline",
    "classify_severity",
    "detect_phase_conflicts",
    "level_resources",
    "optimize_site_capacity",
    # Critical chain
    "aggressive_duration",
    "buffer_status",
    "build_critical_chain",
    "classify_zone",
    "fever_chart_zone",
    "update_buffer_consumption",
    # Critical path
    "CriticalPathResult",
    "TaskGraph",
    "analyze_critical_path",
    # Earned value
    "ActualCostMode",
    "BaselineTask",
    "BaselineValidation",
    "EvmBaseline",
    "HealthStatus",
    "ProjectEvmSnapshot",
    "SCurvePoint",
    "TaskEvmMetrics",
    "TaskProgress",
    "TaskStatus",
    "TaskStatusCounts",
    "capture_baseline",
    "classify_health",
    "compute_evm_snapshot",
    "generate_s_curve",
    "planned_value_at",
    "validate_baseline",
    # Resources
    "ResourceBucket",
    "aggregate_resources",
    "finalize_resources",
    "merge_resources",
    "partial_resources",
    "task_resources",
    # Sequencer
    "PlannedArticle",
    "crew_and_duration",
    "generate_schedule",
    "plan_article",
    "resolve_phase",
    # Tracer
    "compute_input_fingerprint",
    "traced_engine",
]
