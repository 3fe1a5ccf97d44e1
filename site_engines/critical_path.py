"""
Module: site_engines.critical_path
Responsibility:
    Critical Path Method over the detail tasks of a schedule: topological
    ordering, forward and backward passes, total float per task and the
    ordered zero-float chain from project start to project finish.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import site_kernel.

Invariants enforced:
    - Activity-on-node graph; edges are the tasks' ``TaskRelation`` lists.
    - Kahn's algorithm with lowest-uid-first tie-break, so the topological
      order (and everything derived from it) is deterministic.
    - ES = max(0, max(EF(p) + lag)); LF = min(project finish,
      min(LS(s) - lag)); float = LS - ES.
    - Every uid on the critical path has total float 0, and consecutive
      uids are linked by a driving relation.

Failure modes:
    - ScheduleCycleError when relations contain a cycle.
    - UnknownTaskReferenceError when a relation names a uid that is not a
      detail task of the graph.

Audit relevance:
    Each analysis is traced via ``@traced_engine``.  The fingerprint covers
    tasks and duration overrides, so critical-chain re-runs on aggressive
    durations are distinguishable from the safe-duration run.

Usage:
    from site_engines.critical_path import analyze_critical_path

    result = analyze_critical_path(schedule.detail_tasks)
    result.critical_path        # (3, 4, 7, 9)
    result.float_by_uid()[5]    # TaskFloat(uid=5, ..., total_float=2)
"""

from __future__ import annotations

import heapq
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from site_engines.tracer import traced_engine
from site_kernel.domain.schedule import ScheduleTask, TaskFloat
from site_kernel.exceptions import ScheduleCycleError, UnknownTaskReferenceError
from site_kernel.logging_config import get_logger

logger = get_logger("engines.critical_path")


@dataclass(frozen=True)
class TaskGraph:
    """
    Detail-task arena indexed by uid with adjacency in both directions.

    Contract:
        ``predecessors[uid]`` and ``successors[uid]`` hold ``(uid, lag)``
        pairs sorted by uid.  Summary tasks are never nodes.
    """

    tasks: Mapping[int, ScheduleTask]
    predecessors: Mapping[int, tuple[tuple[int, int], ...]]
    successors: Mapping[int, tuple[tuple[int, int], ...]]

    @classmethod
    def build(cls, tasks: Sequence[ScheduleTask]) -> TaskGraph:
        arena = {t.uid: t for t in tasks if not t.is_summary}
        preds: dict[int, list[tuple[int, int]]] = {uid: [] for uid in arena}
        succs: dict[int, list[tuple[int, int]]] = {uid: [] for uid in arena}
        for uid in sorted(arena):
            for rel in arena[uid].predecessors:
                if rel.predecessor_uid not in arena:
                    raise UnknownTaskReferenceError(uid, rel.predecessor_uid)
                preds[uid].append((rel.predecessor_uid, rel.lag_days))
                succs[rel.predecessor_uid].append((uid, rel.lag_days))
        return cls(
            tasks=arena,
            predecessors={uid: tuple(sorted(v)) for uid, v in preds.items()},
            successors={uid: tuple(sorted(v)) for uid, v in succs.items()},
        )

    def topological_order(self) -> tuple[int, ...]:
        """Kahn's algorithm; ready nodes are released lowest uid first."""
        indegree = {uid: len(p) for uid, p in self.predecessors.items()}
        ready = [uid for uid, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)
        order: list[int] = []
        while ready:
            uid = heapq.heappop(ready)
            order.append(uid)
            for succ, _lag in self.successors[uid]:
                indegree[succ] -= 1
                if indegree[succ] == 0:
                    heapq.heappush(ready, succ)
        if len(order) != len(indegree):
            stuck = tuple(sorted(uid for uid, deg in indegree.items() if deg > 0))
            logger.error("schedule_cycle_detected", extra={"cycle_uids": list(stuck)})
            raise ScheduleCycleError(stuck)
        return tuple(order)


@dataclass(frozen=True)
class CriticalPathResult:
    """
    CPM pass results.

    Guarantees:
        - ``floats`` is ordered by uid.
        - ``project_duration_days`` equals the largest early finish.
    """

    floats: tuple[TaskFloat, ...]
    critical_path: tuple[int, ...]
    project_duration_days: int
    topological_order: tuple[int, ...]

    def float_by_uid(self) -> dict[int, TaskFloat]:
        return {f.uid: f for f in self.floats}

    @property
    def critical_uids(self) -> frozenset[int]:
        """All zero-float uids, which may be more than the chosen chain."""
        return frozenset(f.uid for f in self.floats if f.total_float == 0)


@traced_engine("critical_path", "1.0", fingerprint_fields=("tasks", "durations"))
def analyze_critical_path(
    tasks: Sequence[ScheduleTask],
    durations: Mapping[int, int] | None = None,
) -> CriticalPathResult:
    """
    Run the forward and backward passes over the detail tasks.

    Args:
        tasks: Schedule tasks; summary tasks are ignored.
        durations: Optional uid -> duration override (aggressive durations
            for critical chain).  Uids absent from it keep their own
            ``duration_days``.

    Returns:
        CriticalPathResult with floats, the critical chain and the
        project length in days.
    """
    graph = TaskGraph.build(tasks)
    order = graph.topological_order()
    overrides = durations or {}
    dur = {uid: overrides.get(uid, t.duration_days) for uid, t in graph.tasks.items()}

    early_start: dict[int, int] = {}
    early_finish: dict[int, int] = {}
    for uid in order:
        es = 0
        for pred, lag in graph.predecessors[uid]:
            es = max(es, early_finish[pred] + lag)
        early_start[uid] = es
        early_finish[uid] = es + dur[uid]

    project_finish = max(early_finish.values(), default=0)

    late_start: dict[int, int] = {}
    late_finish: dict[int, int] = {}
    for uid in reversed(order):
        lf = project_finish
        for succ, lag in graph.successors[uid]:
            lf = min(lf, late_start[succ] - lag)
        late_finish[uid] = lf
        late_start[uid] = lf - dur[uid]

    floats = tuple(
        TaskFloat(
            uid=uid,
            early_start=early_start[uid],
            early_finish=early_finish[uid],
            late_start=late_start[uid],
            late_finish=late_finish[uid],
            total_float=late_start[uid] - early_start[uid],
        )
        for uid in sorted(graph.tasks)
    )

    chain = _trace_critical_chain(graph, early_start, early_finish, late_start, project_finish)

    logger.info("critical_path_analyzed", extra={
        "task_count": len(graph.tasks),
        "project_duration_days": project_finish,
        "critical_path_length": len(chain),
    })

    return CriticalPathResult(
        floats=floats,
        critical_path=chain,
        project_duration_days=project_finish,
        topological_order=order,
    )


def _trace_critical_chain(
    graph: TaskGraph,
    early_start: Mapping[int, int],
    early_finish: Mapping[int, int],
    late_start: Mapping[int, int],
    project_finish: int,
) -> tuple[int, ...]:
    """Walk back from the project-finishing task along driving zero-float links."""

    def is_critical(uid: int) -> bool:
        return late_start[uid] == early_start[uid]

    def rank(uid: int) -> tuple[int, int]:
        # Later phase first, then higher uid
        return (graph.tasks[uid].phase.order, uid)

    finishers = [
        uid for uid in graph.tasks
        if is_critical(uid) and early_finish[uid] == project_finish
    ]
    if not finishers:
        return ()

    current = max(finishers, key=rank)
    chain = [current]
    while True:
        drivers = [
            pred for pred, lag in graph.predecessors[current]
            if is_critical(pred) and early_finish[pred] + lag == early_start[current]
        ]
        if not drivers:
            break
        current = max(drivers, key=rank)
        chain.append(current)

    chain.reverse()
    return tuple(chain)
