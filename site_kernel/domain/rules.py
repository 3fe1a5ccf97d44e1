"""
Sequencing rule book value objects.

Responsibility:
    Typed, frozen representation of the construction rule book: phase
    definitions (labor role and rate), phase precedence relations, trade
    detection keywords and cure lags, the productivity table and the
    capacity overlap rules.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  ``site_config`` parses YAML
    into these types; engines receive them as arguments and never import
    ``site_config``.

Invariants enforced:
    - Lags, gaps and rates are non-negative.
    - A phase relation never points at itself.

Failure modes:
    - Construction with invalid values raises ``ValueError``.
    - Cross-reference problems (relations pointing forward in taxonomy
      order, unknown trades) are reported by ``site_config.validator``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from site_kernel.domain.phases import ConstructionPhase


@dataclass(frozen=True)
class PhaseDefinition:
    """Display name and primary labor role of one phase."""
    phase: ConstructionPhase
    name: str
    labor_role: str
    labor_rate: Decimal  # per hour

    def __post_init__(self) -> None:
        if self.labor_rate < 0:
            raise ValueError(
                f"labor_rate must be non-negative for {self.phase.value}"
            )


@dataclass(frozen=True)
class PhaseRelation:
    """
    ``phase`` may start once ``predecessor`` has finished, shifted by
    ``lag_days`` and pulled earlier by ``overlap_days``.
    """
    phase: ConstructionPhase
    predecessor: ConstructionPhase
    lag_days: int = 0
    overlap_days: int = 0
    reason: str = ""

    def __post_init__(self) -> None:
        if self.phase is self.predecessor:
            raise ValueError(f"Phase {self.phase.value} cannot precede itself")
        if self.lag_days < 0 or self.overlap_days < 0:
            raise ValueError(
                f"lag_days and overlap_days must be non-negative "
                f"({self.predecessor.value} -> {self.phase.value})"
            )

    @property
    def effective_lag(self) -> int:
        return self.lag_days - self.overlap_days


@dataclass(frozen=True)
class TradeDefinition:
    """A trade detected from article descriptions; lower rank goes first."""
    code: str
    rank: int
    keywords: tuple[str, ...]

    def position(self, description: str) -> int | None:
        """Index of the earliest keyword hit in ``description``, if any."""
        text = description.lower()
        hits = [text.find(k) for k in self.keywords if k in text]
        return min(hits) if hits else None


@dataclass(frozen=True)
class TradeLagRule:
    """Cure / drying lag between two trades within a phase."""
    from_trade: str
    to_trade: str
    lag_days: int
    reason: str = ""

    def __post_init__(self) -> None:
        if self.lag_days < 0:
            raise ValueError(
                f"lag_days must be non-negative "
                f"({self.from_trade} -> {self.to_trade})"
            )


@dataclass(frozen=True)
class PhaseOverlapRule:
    """Whether two phases may share the site at the same time."""
    phase1: ConstructionPhase
    phase2: ConstructionPhase
    can_overlap: bool
    minimum_gap_days: int = 0
    reason: str = ""

    def __post_init__(self) -> None:
        if self.minimum_gap_days < 0:
            raise ValueError("minimum_gap_days must be non-negative")


@dataclass(frozen=True)
class SchedulingDefaults:
    hours_per_day: int = 8
    target_crew_days: int = 5
    default_productivity: Decimal = Decimal("2.0")
    split_crew_threshold: int = 8

    def __post_init__(self) -> None:
        if self.hours_per_day < 1 or self.target_crew_days < 1:
            raise ValueError(
                "hours_per_day and target_crew_days must be at least 1"
            )
        if self.default_productivity < 0:
            raise ValueError("default_productivity must be non-negative")
        if self.split_crew_threshold < 1:
            raise ValueError("split_crew_threshold must be at least 1")


@dataclass(frozen=True)
class SequencingRules:
    """
    The complete rule book.

    Lookups are linear scans over small tuples; callers that need repeated
    lookups build their own dicts per call.
    """
    name: str
    version: int
    phases: tuple[PhaseDefinition, ...]
    relations: tuple[PhaseRelation, ...] = ()
    trades: tuple[TradeDefinition, ...] = ()
    trade_lags: tuple[TradeLagRule, ...] = ()
    productivity: tuple[tuple[str, Decimal], ...] = ()
    overlap_rules: tuple[PhaseOverlapRule, ...] = ()
    defaults: SchedulingDefaults = SchedulingDefaults()
    checksum: str = ""

    def phase_definition(self, phase: ConstructionPhase) -> PhaseDefinition | None:
        for definition in self.phases:
            if definition.phase is phase:
                return definition
        return None

    def relations_for(self, phase: ConstructionPhase) -> tuple[PhaseRelation, ...]:
        return tuple(r for r in self.relations if r.phase is phase)

    def productivity_table(self) -> dict[str, Decimal]:
        return dict(self.productivity)

    def detect_trade(self, description: str) -> TradeDefinition | None:
        """
        Trade named earliest in ``description``; ties go to the lower rank.

        "Paint over plaster" is painting, "Plaster, ready for paint" is
        plastering.
        """
        best: tuple[int, int, str] | None = None
        found: TradeDefinition | None = None
        for trade in self.trades:
            pos = trade.position(description)
            if pos is None:
                continue
            key = (pos, trade.rank, trade.code)
            if best is None or key < best:
                best, found = key, trade
        return found
