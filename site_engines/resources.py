"""
Module: site_engines.resources
Responsibility:
    Reduce task-level resource lines into per-resource and project-wide
    totals (labor hours and cost, material cost, equipment cost).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import site_kernel.

Invariants enforced:
    - Buckets are keyed by (name, type, rate).
    - ``merge_resources`` is associative and commutative, so any
      partitioning of the task list reduces to the same totals.
    - Output order is canonical (type, name, rate) and uids are assigned
      after sorting: results do not depend on task order.
    - Labor hours = duration_hours * units; labor cost = hours * rate;
      material / equipment cost = units * rate.

Failure modes:
    None; summary tasks are skipped.

Usage:
    from site_engines.resources import aggregate_resources, merge_resources
    from site_engines.resources import partial_resources, finalize_resources

    whole = aggregate_resources(schedule.tasks)

    left = partial_resources(tasks[:100])
    right = partial_resources(tasks[100:])
    assert finalize_resources(merge_resources(left, right)) == whole
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from functools import reduce

from site_engines.tracer import traced_engine
from site_kernel.domain.schedule import (
    ProjectResource,
    ProjectResources,
    ResourceType,
    ScheduleTask,
)
from site_kernel.logging_config import get_logger

logger = get_logger("engines.resources")

_MONEY = Decimal("0.01")
_TYPE_ORDER = {t: i for i, t in enumerate(ResourceType)}

ResourceKey = tuple[str, ResourceType, Decimal]


@dataclass(frozen=True)
class ResourceBucket:
    """Running totals for one resource key."""

    units: Decimal = Decimal("0")
    hours: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    task_count: int = 0

    def combine(self, other: ResourceBucket) -> ResourceBucket:
        return ResourceBucket(
            units=self.units + other.units,
            hours=self.hours + other.hours,
            cost=self.cost + other.cost,
            task_count=self.task_count + other.task_count,
        )


PartialResources = Mapping[ResourceKey, ResourceBucket]


def task_resources(task: ScheduleTask) -> dict[ResourceKey, ResourceBucket]:
    """Partial result for a single detail task (empty for summaries)."""
    if task.is_summary:
        return {}
    partial: dict[ResourceKey, ResourceBucket] = {}
    for line in task.resources:
        key = (line.name, line.resource_type, line.rate)
        bucket = ResourceBucket(
            units=line.units,
            hours=line.hours(task.duration_hours),
            cost=line.line_cost(task.duration_hours),
            task_count=1,
        )
        partial[key] = partial[key].combine(bucket) if key in partial else bucket
    return partial


def merge_resources(
    left: PartialResources,
    right: PartialResources,
) -> dict[ResourceKey, ResourceBucket]:
    """Combine two partial results. Neither argument is modified."""
    merged = dict(left)
    for key, bucket in right.items():
        merged[key] = merged[key].combine(bucket) if key in merged else bucket
    return merged


def partial_resources(tasks: Iterable[ScheduleTask]) -> dict[ResourceKey, ResourceBucket]:
    return reduce(merge_resources, map(task_resources, tasks), {})


def finalize_resources(partial: PartialResources) -> ProjectResources:
    """Canonical ``ProjectResources`` from a (fully merged) partial result."""
    ordered = sorted(
        partial.items(),
        key=lambda kv: (_TYPE_ORDER[kv[0][1]], kv[0][0], kv[0][2]),
    )
    resources = tuple(
        ProjectResource(
            uid=index,
            name=name,
            resource_type=rtype,
            rate=rate.quantize(_MONEY),
            total_units=bucket.units,
            total_hours=bucket.hours.quantize(_MONEY),
            total_cost=bucket.cost.quantize(_MONEY),
            task_count=bucket.task_count,
        )
        for index, ((name, rtype, rate), bucket) in enumerate(ordered, start=1)
    )

    def total(rtype: ResourceType, attr: str) -> Decimal:
        return sum(
            (getattr(b, attr) for (_n, t, _r), b in partial.items() if t is rtype),
            Decimal("0"),
        ).quantize(_MONEY)

    labor_cost = total(ResourceType.LABOR, "cost")
    material_cost = total(ResourceType.MATERIAL, "cost")
    equipment_cost = total(ResourceType.EQUIPMENT, "cost")
    return ProjectResources(
        resources=resources,
        total_labor_hours=total(ResourceType.LABOR, "hours"),
        total_labor_cost=labor_cost,
        total_material_cost=material_cost,
        total_equipment_cost=equipment_cost,
        grand_total=labor_cost + material_cost + equipment_cost,
    )


@traced_engine("resources", "1.0", fingerprint_fields=("tasks",))
def aggregate_resources(tasks: Sequence[ScheduleTask]) -> ProjectResources:
    """Aggregate the resource lines of every detail task."""
    result = finalize_resources(partial_resources(tasks))
    logger.info("resources_aggregated", extra={
        "resource_count": len(result.resources),
        "total_labor_hours": str(result.total_labor_hours),
        "grand_total": str(result.grand_total),
    })
    return result
