"""
Module: site_engines.critical_chain
Responsibility:
    Goldratt Critical Chain (CCPM) transformation of a CPM schedule: strip
    per-task safety, re-run CPM on the aggressive durations, pool the
    removed safety into a project buffer after the chain and feeding
    buffers where non-chain paths merge into it.  Buffer consumption and
    zones are pure functions of a data date (or of chain progress).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import site_kernel and sibling engine modules.

Invariants enforced:
    - aggressive = max(1, ceil(safe * (1 - safety_reduction))) for tasks
      with a positive safe duration; removed safety = safe - aggressive.
    - project buffer = ceil(project_buffer_ratio * removed safety on the
      chain); feeding buffer = ceil(feeding_buffer_ratio * removed safety
      on the feeding path).  Zero-size feeding buffers are not emitted.
    - Feeding buffers end at the merge task's aggressive start and never
      move the chain.
    - ccpm_duration_days = aggressive_duration_days + project buffer, so a
      safety reduction of zero reproduces the CPM length exactly.
    - buffer_status is monotone: consumed_percent never decreases as the
      data date advances.

Failure modes:
    - ScheduleCycleError / UnknownTaskReferenceError from the CPM passes.

Audit relevance:
    Buffer placement is traced via ``@traced_engine``; the buffer uids are
    allocated after the highest task uid so exporters can list buffers
    beside tasks without collisions.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

from site_engines.critical_path import CriticalPathResult, TaskGraph, analyze_critical_path
from site_engines.tracer import traced_engine
from site_kernel.domain.schedule import (
    AggressiveTaskWindow,
    BufferType,
    BufferZone,
    CriticalChainBuffer,
    CriticalChainData,
    ScheduleOptions,
    ScheduleTask,
    TaskFloat,
)
from site_kernel.logging_config import get_logger

logger = get_logger("engines.critical_chain")

_PERCENT = Decimal("0.01")
_HUNDRED = Decimal("100")
_YELLOW_THRESHOLD = Decimal("33")
_RED_THRESHOLD = Decimal("66")


def aggressive_duration(safe_days: int, safety_reduction: Decimal) -> int:
    """Safe duration with ``safety_reduction`` stripped, rounded up, min 1 day."""
    if safe_days <= 0:
        return 0
    return max(1, math.ceil(Decimal(safe_days) * (Decimal("1") - safety_reduction)))


def classify_zone(consumed_percent: Decimal) -> BufferZone:
    """green below 33%, yellow below 66%, red from 66%."""
    if consumed_percent < _YELLOW_THRESHOLD:
        return BufferZone.GREEN
    if consumed_percent < _RED_THRESHOLD:
        return BufferZone.YELLOW
    return BufferZone.RED


def fever_chart_zone(
    consumed_percent: Decimal,
    chain_completion_percent: Decimal,
) -> BufferZone:
    """
    Fever-chart zone: buffer consumption relative to chain completion.

    Consuming 20% of a buffer with the chain 90% done is healthy; the same
    consumption at 10% completion is not.  Completion below 1% is treated
    as 1% so an unstarted chain does not divide by zero.
    """
    completion = max(Decimal("1"), chain_completion_percent)
    ratio = consumed_percent / completion * _HUNDRED
    return classify_zone(ratio)


def buffer_status(buffer: CriticalChainBuffer, data_date: date) -> CriticalChainBuffer:
    """
    Buffer with consumption and zone recomputed for ``data_date``.

    consumed = clamp(elapsed fraction of the buffer window, 0, 1) * 100.
    A zero-length buffer is fully consumed once its date is reached.
    """
    window = (buffer.finish_date - buffer.start_date).days
    elapsed = (data_date - buffer.start_date).days
    if window <= 0:
        consumed = _HUNDRED if elapsed >= 0 else Decimal("0")
    else:
        fraction = min(Decimal("1"), max(Decimal("0"), Decimal(elapsed) / Decimal(window)))
        consumed = (fraction * _HUNDRED).quantize(_PERCENT)
    return replace(buffer, consumed_percent=consumed, zone=classify_zone(consumed))


def update_buffer_consumption(
    buffer: CriticalChainBuffer,
    chain_completion_percent: Decimal,
    chain_delay_days: int,
) -> CriticalChainBuffer:
    """
    Buffer consumption from the delay reported on the chain it protects.

    consumed = clamp(delay / buffer length) * 100; the zone comes from the
    fever chart against ``chain_completion_percent``.
    """
    if buffer.duration_days > 0:
        raw = Decimal(chain_delay_days) / Decimal(buffer.duration_days) * _HUNDRED
        consumed = min(_HUNDRED, max(Decimal("0"), raw)).quantize(_PERCENT)
    else:
        consumed = Decimal("0")
    zone = fever_chart_zone(consumed, chain_completion_percent)
    return replace(buffer, consumed_percent=consumed, zone=zone)


@traced_engine(
    "critical_chain", "1.0",
    fingerprint_fields=("tasks", "options", "start_date"),
)
def build_critical_chain(
    tasks: Sequence[ScheduleTask],
    options: ScheduleOptions,
    start_date: date,
    safe_result: CriticalPathResult | None = None,
) -> CriticalChainData:
    """
    Apply the critical chain transformation to the detail tasks.

    Args:
        tasks: Schedule tasks (summary tasks are ignored).
        options: Safety reduction and buffer ratios.
        start_date: Project start; buffer and window dates are offsets
            from it.
        safe_result: CPM result on the safe durations, when the caller
            already has one.

    Returns:
        CriticalChainData.  The input tasks are not modified.
    """
    safe = safe_result or analyze_critical_path(tasks)
    graph = TaskGraph.build(tasks)

    safe_days = {uid: t.duration_days for uid, t in graph.tasks.items()}
    aggressive = {
        uid: aggressive_duration(days, options.safety_reduction)
        for uid, days in safe_days.items()
    }
    removed = {uid: safe_days[uid] - aggressive[uid] for uid in graph.tasks}

    result = analyze_critical_path(tasks, durations=aggressive)
    floats = result.float_by_uid()
    chain = result.critical_path
    chain_set = frozenset(chain)

    windows = tuple(
        AggressiveTaskWindow(
            uid=uid,
            start_date=start_date + timedelta(days=floats[uid].early_start),
            finish_date=start_date + timedelta(days=floats[uid].early_finish),
            duration_days=aggressive[uid],
            safe_duration_days=safe_days[uid],
        )
        for uid in sorted(graph.tasks)
    )

    next_uid = max(graph.tasks, default=0) + 1

    chain_safety = sum(removed[uid] for uid in chain)
    project_buffer_days = _buffer_size(options.project_buffer_ratio, chain_safety)
    aggressive_days = result.project_duration_days
    ccpm_days = aggressive_days + project_buffer_days

    project_buffer = CriticalChainBuffer(
        uid=next_uid,
        buffer_type=BufferType.PROJECT,
        name="Project Buffer",
        start_date=start_date + timedelta(days=aggressive_days),
        finish_date=start_date + timedelta(days=ccpm_days),
        duration_days=project_buffer_days,
        feeding_chain=chain,
        protects_task=chain[-1] if chain else None,
    )
    next_uid += 1

    feeding_buffers: list[CriticalChainBuffer] = []
    for merge_uid in chain:
        for pred_uid, _lag in graph.predecessors[merge_uid]:
            if pred_uid in chain_set:
                continue
            path = _trace_feeding_path(graph, pred_uid, chain_set, floats)
            size = _buffer_size(
                options.feeding_buffer_ratio, sum(removed[uid] for uid in path)
            )
            if size == 0:
                continue
            finish = start_date + timedelta(days=floats[merge_uid].early_start)
            start = max(start_date, finish - timedelta(days=size))
            if start >= finish:
                continue
            feeding_buffers.append(
                CriticalChainBuffer(
                    uid=next_uid,
                    buffer_type=BufferType.FEEDING,
                    name=f"Feeding Buffer: {graph.tasks[pred_uid].name}",
                    start_date=start,
                    finish_date=finish,
                    duration_days=(finish - start).days,
                    feeding_chain=path,
                    protects_task=merge_uid,
                )
            )
            next_uid += 1

    ratio = options.safety_reduction * _HUNDRED
    data = CriticalChainData(
        chain=chain,
        buffers=(project_buffer, *feeding_buffers),
        project_buffer=project_buffer,
        feeding_buffers=tuple(feeding_buffers),
        aggressive_tasks=windows,
        original_duration_days=safe.project_duration_days,
        aggressive_duration_days=aggressive_days,
        ccpm_duration_days=ccpm_days,
        ccpm_finish_date=start_date + timedelta(days=ccpm_days),
        safety_reduction_percent=ratio.quantize(_PERCENT),
        buffer_ratio=options.project_buffer_ratio,
    )

    logger.info("critical_chain_built", extra={
        "chain_length": len(chain),
        "original_duration_days": data.original_duration_days,
        "aggressive_duration_days": aggressive_days,
        "project_buffer_days": project_buffer_days,
        "feeding_buffer_count": len(feeding_buffers),
        "ccpm_duration_days": ccpm_days,
    })
    return data


def _buffer_size(ratio: Decimal, removed_days: int) -> int:
    return max(0, math.ceil(ratio * Decimal(removed_days)))


def _trace_feeding_path(
    graph: TaskGraph,
    start_uid: int,
    chain: frozenset[int],
    floats: Mapping[int, TaskFloat],
) -> tuple[int, ...]:
    """
    Walk back from ``start_uid`` through non-chain predecessors.

    At each step the predecessor finishing latest (then the higher uid) is
    followed.  Returned earliest task first.
    """
    path = [start_uid]
    visited = {start_uid}
    current = start_uid
    while True:
        candidates = [
            pred for pred, _lag in graph.predecessors[current]
            if pred not in chain and pred not in visited
        ]
        if not candidates:
            break
        current = max(candidates, key=lambda uid: (floats[uid].early_finish, uid))
        path.append(current)
        visited.add(current)
    path.reverse()
    return tuple(path)
