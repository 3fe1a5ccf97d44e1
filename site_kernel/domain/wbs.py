"""
Work breakdown structure consumed by the scheduler.

Responsibility
--------------
Frozen value objects for the priced, phase-classified WBS tree handed over by
the ingestion and cost-matching collaborators: project -> chapters ->
sub-chapters -> articles, plus the ``CostMatch`` that prices each article.

Architecture position
---------------------
**Kernel > Domain** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``; collections are tuples.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``CostMatch`` rejects negative costs, negative productivity and crews
  smaller than one worker.

Failure modes
-------------
* Construction with invalid values raises ``ValueError``.
* A missing or non-positive article quantity is NOT a construction error;
  the sequencer excludes such articles with a warning.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from site_kernel.domain.phases import ConstructionPhase


@dataclass(frozen=True)
class WbsArticle:
    """A measurable line of work (one future detail task)."""
    code: str
    description: str
    unit: str
    quantity: Decimal | None
    phase: ConstructionPhase | None = None  # overrides the chapter phase
    keynote: str | None = None
    storey: str | None = None


@dataclass(frozen=True)
class WbsSubChapter:
    """A group of articles inside a chapter."""
    code: str
    name: str
    articles: tuple[WbsArticle, ...] = ()


@dataclass(frozen=True)
class WbsChapter:
    """A top-level chapter, classified into a construction phase."""
    code: str
    name: str
    phase: ConstructionPhase | None = None
    sub_chapters: tuple[WbsSubChapter, ...] = ()


@dataclass(frozen=True)
class WbsProject:
    """The WBS tree for one construction project."""
    name: str
    start_date: date
    chapters: tuple[WbsChapter, ...] = ()

    def iter_articles(self) -> Iterator[tuple[WbsChapter, WbsArticle]]:
        """Yield (chapter, article) pairs in document order."""
        for chapter in self.chapters:
            for sub in chapter.sub_chapters:
                for article in sub.articles:
                    yield chapter, article


@dataclass(frozen=True)
class CostMatch:
    """
    Matched unit cost for one WBS article.

    ``material_cost`` and ``equipment_cost`` are per-unit breakdowns of
    ``unit_cost``; whatever remains is labor.
    """
    article_code: str
    price_code: str
    unit_cost: Decimal
    productivity: Decimal | None = None  # man-hours per unit
    crew_size: int | None = None
    material_cost: Decimal = Decimal("0")
    equipment_cost: Decimal = Decimal("0")
    confidence: int = 100

    def __post_init__(self) -> None:
        if self.unit_cost < 0:
            raise ValueError(
                f"unit_cost must be non-negative for {self.article_code}, "
                f"got {self.unit_cost}"
            )
        if self.material_cost < 0 or self.equipment_cost < 0:
            raise ValueError(
                f"Cost breakdown must be non-negative for {self.article_code}"
            )
        if self.productivity is not None and self.productivity < 0:
            raise ValueError(
                f"productivity must be non-negative for {self.article_code}"
            )
        if self.crew_size is not None and self.crew_size < 1:
            raise ValueError(
                f"crew_size must be at least 1 for {self.article_code}, "
                f"got {self.crew_size}"
            )
        if not 0 <= self.confidence <= 100:
            raise ValueError(
                f"confidence must be within [0, 100], got {self.confidence}"
            )
