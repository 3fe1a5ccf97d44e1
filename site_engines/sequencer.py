"""
Module: site_engines.sequencer
Responsibility:
    Turn a priced, phase-classified WBS into a dated ``ProjectSchedule``:
    one detail task per schedulable article, sequenced by the phase
    taxonomy, the phase relation table and the trade cure-lag table, with
    per-phase summary roll-ups, CPM floats, the optional critical chain,
    aggregated resources and a team summary.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import site_kernel and sibling engine modules.  The rule book
    arrives as an argument; this module never reads configuration.

Invariants enforced:
    - Calendar days, exclusive finish dates: finish = start + duration.
    - Phases are walked in taxonomy order; phases without schedulable
      articles are omitted.  Every relation points at an already dated
      task, so construction order is a topological order.
    - A phase never starts before the phases it depends on started.
    - Crew size never exceeds ``options.max_workers``; every detail task
      lasts at least one day.
    - Uids are allocated in outline order (phase summary, then its detail
      tasks) before any dating happens.
    - Summary tasks are a fold over their phase's detail tasks: range is
      the union, cost is the sum.

Failure modes:
    - MalformedWbsError for duplicate article codes or a start date that
      is not a ``date``.
    - Recoverable article problems (missing or non-positive quantity, no
      cost match, no phase) exclude the article and add a
      ``ScheduleWarning``; they never abort generation.

Audit relevance:
    Every generation is traced via ``@traced_engine``.  The schedule notes
    record man-hours and crew per task so exported plans can be checked
    against the productivity table.

Usage:
    from site_config import load_rulebook
    from site_engines.sequencer import generate_schedule

    schedule = generate_schedule(project, matches, ScheduleOptions(), load_rulebook())
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from functools import reduce

from site_engines.critical_chain import build_critical_chain
from site_engines.critical_path import analyze_critical_path
from site_engines.resources import aggregate_resources
from site_engines.tracer import traced_engine
from site_kernel.domain.diagnostics import ScheduleWarning, WarningCode
from site_kernel.domain.phases import PHASE_ORDER, ConstructionPhase
from site_kernel.domain.rules import SequencingRules, TradeDefinition
from site_kernel.domain.schedule import (
    ProjectSchedule,
    ResourceType,
    ScheduleOptions,
    ScheduleTask,
    TaskRelation,
    TaskResource,
    TeamSummary,
)
from site_kernel.domain.wbs import CostMatch, WbsArticle, WbsChapter, WbsProject
from site_kernel.exceptions import MalformedWbsError
from site_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.sequencer")

_MONEY = Decimal("0.01")
_HOURS = Decimal("0.01")
_DEFAULT_ROLE = ("General worker", Decimal("12"))


@dataclass(frozen=True)
class PlannedArticle:
    """
    A schedulable article with its derived effort.

    Contract:
        Produced by ``plan_article`` only for articles that passed every
        exclusion check.
    """

    article: WbsArticle
    phase: ConstructionPhase
    match: CostMatch
    trade: TradeDefinition | None
    man_hours: Decimal
    crew_size: int
    duration_days: int

    @property
    def sort_key(self) -> tuple[int, str]:
        # Untraded work keeps WBS order ahead of ranked trades
        return (self.trade.rank if self.trade else 0, self.article.code)


# ---------------------------------------------------------------------------
# Article planning
# ---------------------------------------------------------------------------


def resolve_phase(chapter: WbsChapter, article: WbsArticle) -> ConstructionPhase | None:
    """Article override, else the chapter classification."""
    return article.phase or chapter.phase


def crew_and_duration(
    man_hours: Decimal,
    crew_override: int | None,
    options: ScheduleOptions,
    rules: SequencingRules,
) -> tuple[int, int]:
    """
    Crew size and duration in days for ``man_hours`` of work.

    crew = override, else max(1, min(max_workers, ceil(mh / (hpd * target
    crew days)))), always capped at max_workers; duration = max(1,
    ceil(mh / (crew * hpd))).
    """
    hpd = rules.defaults.hours_per_day
    if crew_override is not None:
        crew = crew_override
    else:
        crew = math.ceil(man_hours / Decimal(hpd * rules.defaults.target_crew_days))
    crew = max(1, min(options.max_workers, crew))
    duration = max(1, math.ceil(man_hours / Decimal(crew * hpd)))
    return crew, duration


def plan_article(
    chapter: WbsChapter,
    article: WbsArticle,
    match: CostMatch | None,
    options: ScheduleOptions,
    rules: SequencingRules,
    productivity: dict[str, Decimal],
) -> PlannedArticle | ScheduleWarning:
    """Plan one article, or explain why it cannot be scheduled."""
    if article.quantity is None or article.quantity <= 0:
        return ScheduleWarning(
            code=WarningCode.INVALID_QUANTITY,
            subject=article.code,
            message=(
                f"Article {article.code} excluded: quantity "
                f"{article.quantity} is missing or not positive"
            ),
        )
    phase = resolve_phase(chapter, article)
    if phase is None:
        return ScheduleWarning(
            code=WarningCode.UNCLASSIFIED_PHASE,
            subject=article.code,
            message=f"Article {article.code} excluded: no construction phase",
        )
    if match is None:
        return ScheduleWarning(
            code=WarningCode.UNMATCHED_COST,
            subject=article.code,
            message=f"Article {article.code} excluded: no matched unit cost",
        )

    rate = match.productivity
    if rate is None:
        rate = productivity.get(match.price_code, rules.defaults.default_productivity)
    man_hours = article.quantity * rate
    crew, duration = crew_and_duration(man_hours, match.crew_size, options, rules)
    return PlannedArticle(
        article=article,
        phase=phase,
        match=match,
        trade=rules.detect_trade(article.description),
        man_hours=man_hours,
        crew_size=crew,
        duration_days=duration,
    )


# ---------------------------------------------------------------------------
# Task construction
# ---------------------------------------------------------------------------


def _build_resources(
    planned: PlannedArticle, rules: SequencingRules
) -> tuple[TaskResource, ...]:
    definition = rules.phase_definition(planned.phase)
    role, rate = (
        (definition.labor_role, definition.labor_rate) if definition else _DEFAULT_ROLE
    )
    quantity = planned.article.quantity
    lines = [
        TaskResource(
            resource_type=ResourceType.LABOR,
            name=role,
            units=Decimal(planned.crew_size),
            rate=rate,
        )
    ]
    if planned.match.material_cost > 0:
        lines.append(
            TaskResource(
                resource_type=ResourceType.MATERIAL,
                name=f"Materials {planned.match.price_code}",
                units=quantity,
                rate=planned.match.material_cost,
            )
        )
    if planned.match.equipment_cost > 0:
        lines.append(
            TaskResource(
                resource_type=ResourceType.EQUIPMENT,
                name=f"Equipment {planned.match.price_code}",
                units=quantity,
                rate=planned.match.equipment_cost,
            )
        )
    return tuple(lines)


def _notes(planned: PlannedArticle) -> str:
    article = planned.article
    note = (
        f"{article.quantity} {article.unit}, "
        f"{planned.man_hours.quantize(_HOURS)} man-hours, crew of {planned.crew_size}"
    )
    if planned.trade is not None:
        note += f", trade {planned.trade.code}"
    return note


def _merge_relations(relations: list[TaskRelation]) -> tuple[TaskRelation, ...]:
    """One relation per predecessor, keeping the most constraining lag."""
    strongest: dict[int, int] = {}
    for rel in relations:
        lag = strongest.get(rel.predecessor_uid)
        if lag is None or rel.lag_days > lag:
            strongest[rel.predecessor_uid] = rel.lag_days
    return tuple(TaskRelation(uid, lag) for uid, lag in sorted(strongest.items()))


@dataclass(frozen=True)
class _PhaseSpan:
    """Dated extent of a phase, as day offsets from project start."""

    start: int
    last_uid: int
    last_finish: int


def _phase_entry_relations(
    phase: ConstructionPhase,
    spans: dict[ConstructionPhase, _PhaseSpan],
    rules: SequencingRules,
) -> list[TaskRelation]:
    """Relations of a phase's first task to the phases it depends on."""
    relations: list[TaskRelation] = []
    for rel in rules.relations_for(phase):
        span = spans.get(rel.predecessor)
        if span is None:
            continue
        # Never start before the predecessor phase itself started
        floor_lag = span.start - span.last_finish
        relations.append(TaskRelation(span.last_uid, max(rel.effective_lag, floor_lag)))
    if not relations and spans:
        nearest = max(spans, key=lambda p: p.order)
        relations.append(TaskRelation(spans[nearest].last_uid, 0))
    return relations


def _trade_lag_relations(
    ordered: Sequence[PlannedArticle],
    uids: Sequence[int],
    index: int,
    lag_table: dict[tuple[str, str], int],
) -> list[TaskRelation]:
    """Cure-lag links from every earlier task of a ruled trade to ``index``."""
    later = ordered[index].trade
    if later is None:
        return []
    relations = []
    for j in range(index):
        earlier = ordered[j].trade
        if earlier is None:
            continue
        lag = lag_table.get((earlier.code, later.code))
        if lag is not None:
            relations.append(TaskRelation(uids[j], lag))
    return relations


def _summary_rollup(
    uid: int,
    phase: ConstructionPhase,
    name: str,
    details: Sequence[ScheduleTask],
    hours_per_day: int,
) -> ScheduleTask:
    """Fold a phase's detail tasks into its summary task."""

    def fold(acc: tuple[date, date, Decimal], task: ScheduleTask) -> tuple[date, date, Decimal]:
        start, finish, cost = acc
        return (
            min(start, task.start_date),
            max(finish, task.finish_date),
            cost + task.cost,
        )

    first = details[0]
    start, finish, cost = reduce(
        fold, details[1:], (first.start_date, first.finish_date, first.cost)
    )
    span = (finish - start).days
    return ScheduleTask(
        uid=uid,
        name=name,
        phase=phase,
        start_date=start,
        finish_date=finish,
        duration_days=span,
        duration_hours=Decimal(span * hours_per_day),
        cost=cost,
        is_summary=True,
        outline_level=1,
    )


def _team_summary(
    details: Sequence[ScheduleTask],
    start: date,
    duration_days: int,
    options: ScheduleOptions,
) -> TeamSummary:
    daily = [Decimal("0")] * duration_days
    for task in details:
        offset = (task.start_date - start).days
        for day in range(offset, offset + task.duration_days):
            if 0 <= day < duration_days:
                daily[day] += task.labor_units
    worker_days = sum(daily, Decimal("0"))
    average = (worker_days / duration_days).quantize(_MONEY) if duration_days else Decimal("0.00")
    return TeamSummary(
        average_workers=average,
        max_workers=options.max_workers,
        peak_workers=int(max(daily, default=Decimal("0"))),
        total_man_hours=sum((t.man_hours for t in details), Decimal("0")).quantize(_HOURS),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _index_matches(matches: Sequence[CostMatch]) -> dict[str, CostMatch]:
    index: dict[str, CostMatch] = {}
    for match in matches:
        if match.article_code in index:
            logger.debug("cost_match_superseded", extra={
                "article_code": match.article_code,
                "price_code": match.price_code,
            })
        index[match.article_code] = match
    return index


def _check_shape(project: WbsProject) -> None:
    if not isinstance(project.start_date, date):
        raise MalformedWbsError(f"start date {project.start_date!r} is not a date")
    seen: set[str] = set()
    for _chapter, article in project.iter_articles():
        if article.code in seen:
            raise MalformedWbsError("duplicate article code", article.code)
        seen.add(article.code)


@traced_engine(
    "sequencer", "1.0",
    fingerprint_fields=("project", "matches", "options", "rules"),
)
def generate_schedule(
    project: WbsProject,
    matches: Sequence[CostMatch],
    options: ScheduleOptions,
    rules: SequencingRules,
) -> ProjectSchedule:
    """
    Generate the unleveled schedule for ``project``.

    Preconditions:
        - Article codes are unique within the project.
    Postconditions:
        - ``total_duration_days == (finish_date - start_date).days``.
        - Tasks are ordered by uid (outline order).
        - ``critical_chain`` is populated only when
          ``options.use_critical_chain`` is set.

    Raises:
        MalformedWbsError: duplicate article codes or a bad start date.
        ScheduleCycleError: never for rule books that passed validation.
    """
    with LogContext.bind(project_id=project.name):
        return _sequence(project, matches, options, rules)


def _sequence(
    project: WbsProject,
    matches: Sequence[CostMatch],
    options: ScheduleOptions,
    rules: SequencingRules,
) -> ProjectSchedule:
    _check_shape(project)
    match_index = _index_matches(matches)
    productivity = rules.productivity_table()

    warnings: list[ScheduleWarning] = []
    by_phase: dict[ConstructionPhase, list[PlannedArticle]] = {}
    for chapter, article in project.iter_articles():
        outcome = plan_article(
            chapter, article, match_index.get(article.code), options, rules, productivity
        )
        if isinstance(outcome, ScheduleWarning):
            warnings.append(outcome)
            logger.warning("article_excluded", extra={
                "article_code": article.code,
                "warning_code": outcome.code.value,
            })
            continue
        by_phase.setdefault(outcome.phase, []).append(outcome)

    active = [p for p in PHASE_ORDER if p in by_phase]
    ordered = {p: sorted(by_phase[p], key=lambda a: a.sort_key) for p in active}

    # Uids in outline order: each phase's summary, then its details
    summary_uid: dict[ConstructionPhase, int] = {}
    detail_uids: dict[ConstructionPhase, list[int]] = {}
    next_uid = 1
    for phase in active:
        summary_uid[phase] = next_uid
        detail_uids[phase] = list(range(next_uid + 1, next_uid + 1 + len(ordered[phase])))
        next_uid += 1 + len(ordered[phase])

    lag_table = {(r.from_trade, r.to_trade): r.lag_days for r in rules.trade_lags}
    hpd = rules.defaults.hours_per_day
    finish_offset: dict[int, int] = {}
    spans: dict[ConstructionPhase, _PhaseSpan] = {}
    tasks: list[ScheduleTask] = []

    for phase in active:
        phase_tasks: list[ScheduleTask] = []
        uids = detail_uids[phase]
        for i, planned in enumerate(ordered[phase]):
            if i == 0:
                relations = _phase_entry_relations(phase, spans, rules)
            else:
                relations = [TaskRelation(uids[i - 1], 0)]
                relations += _trade_lag_relations(ordered[phase], uids, i, lag_table)
            merged = _merge_relations(relations)

            start = max(
                [0] + [finish_offset[r.predecessor_uid] + r.lag_days for r in merged]
            )
            finish_offset[uids[i]] = start + planned.duration_days
            start_date = project.start_date + timedelta(days=start)
            phase_tasks.append(
                ScheduleTask(
                    uid=uids[i],
                    name=planned.article.description,
                    phase=phase,
                    start_date=start_date,
                    finish_date=start_date + timedelta(days=planned.duration_days),
                    duration_days=planned.duration_days,
                    duration_hours=Decimal(planned.duration_days * hpd),
                    cost=(planned.match.unit_cost * planned.article.quantity).quantize(_MONEY),
                    resources=_build_resources(planned, rules),
                    notes=_notes(planned),
                    wbs_code=planned.article.code,
                    predecessors=merged,
                    storey=planned.article.storey,
                )
            )

        offsets = [finish_offset[u] - t.duration_days for u, t in zip(uids, phase_tasks)]
        spans[phase] = _PhaseSpan(
            start=min(offsets),
            last_uid=uids[-1],
            last_finish=finish_offset[uids[-1]],
        )
        definition = rules.phase_definition(phase)
        tasks.append(
            _summary_rollup(
                summary_uid[phase],
                phase,
                definition.name if definition else phase.value.replace("_", " ").title(),
                phase_tasks,
                hpd,
            )
        )
        tasks.extend(phase_tasks)

    details = [t for t in tasks if not t.is_summary]
    cpm = analyze_critical_path(details)
    duration = cpm.project_duration_days

    critical_chain = None
    if options.use_critical_chain and details:
        critical_chain = build_critical_chain(
            details, options, project.start_date, safe_result=cpm
        )

    schedule = ProjectSchedule(
        project_name=project.name,
        start_date=project.start_date,
        finish_date=project.start_date + timedelta(days=duration),
        tasks=tuple(tasks),
        total_duration_days=duration,
        total_cost=sum((t.cost for t in details), Decimal("0")).quantize(_MONEY),
        team_summary=_team_summary(details, project.start_date, duration, options),
        critical_path=cpm.critical_path,
        floats=cpm.floats,
        critical_chain=critical_chain,
        resources=aggregate_resources(details),
        warnings=tuple(warnings),
    )

    logger.info("schedule_generated", extra={
        "project_name": project.name,
        "phase_count": len(active),
        "task_count": len(details),
        "excluded_count": len(warnings),
        "total_duration_days": duration,
        "total_cost": str(schedule.total_cost),
        "critical_chain": critical_chain is not None,
    })
    return schedule
