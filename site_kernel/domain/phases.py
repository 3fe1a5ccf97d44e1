"""
Construction phase taxonomy.

Responsibility:
    The fixed, totally ordered set of construction phases every schedule is
    built on. Declaration order IS execution order; ``phase.order`` exposes
    the index so engines can compare phases without lookup tables.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - Twenty phases, declared in execution order.
    - ``ConstructionPhase.parse`` accepts only known codes.
"""

from __future__ import annotations

from enum import Enum


class ConstructionPhase(str, Enum):
    """Construction phase, ordered from site setup to closeout testing."""

    SITE_SETUP = "site_setup"
    EARTHWORKS = "earthworks"
    FOUNDATIONS = "foundations"
    STRUCTURE = "structure"
    MASONRY = "masonry"
    ROOFING = "roofing"
    WATERPROOFING = "waterproofing"
    EXTERIOR_FINISHES = "exterior_finishes"
    INTERIOR_FINISHES = "interior_finishes"
    FLOORS = "floors"
    CEILINGS = "ceilings"
    OPENINGS = "openings"
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    TELECOM = "telecom"
    HVAC = "hvac"
    FIRE_SAFETY = "fire_safety"
    INSULATION = "insulation"
    EXTERIOR_WORKS = "exterior_works"
    TESTING = "testing"

    @property
    def order(self) -> int:
        return _PHASE_INDEX[self]

    @classmethod
    def parse(cls, value: str | ConstructionPhase) -> ConstructionPhase:
        """Resolve a phase from its code; raises ValueError for unknown codes."""
        if isinstance(value, ConstructionPhase):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown construction phase: {value!r}") from None


_PHASE_INDEX: dict[ConstructionPhase, int] = {
    phase: index for index, phase in enumerate(ConstructionPhase)
}

PHASE_ORDER: tuple[ConstructionPhase, ...] = tuple(ConstructionPhase)
