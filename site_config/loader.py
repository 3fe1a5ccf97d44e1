"""
Rule Book Loader (``site_config.loader``).

Responsibility
--------------
Loads the sequencing rule book YAML and parses it into the frozen
``site_kernel.domain.rules`` value objects consumed by the engines.

Architecture position
---------------------
**Config layer** -- the only package that performs file I/O.  Engines never
import it; callers pass the parsed ``SequencingRules`` in explicitly.

Invariants enforced
-------------------
* No silent defaults for required keys: a missing key raises ``KeyError``.
* Every parsed object is a frozen dataclass from ``site_kernel``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document, so two loads of the same file always agree.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (unknown phase code, negative lag)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from site_kernel.domain.phases import ConstructionPhase
from site_kernel.domain.rules import (
    PhaseDefinition,
    PhaseOverlapRule,
    PhaseRelation,
    SchedulingDefaults,
    SequencingRules,
    TradeDefinition,
    TradeLagRule,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Rule book {path} must be a mapping at top level")
    return data


def parse_decimal(value: Any) -> Decimal:
    """Parse a Decimal from a YAML string or number without float drift."""
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    if isinstance(value, (int, str, Decimal)):
        return Decimal(str(value))
    if isinstance(value, float):
        return Decimal(repr(value))
    raise ValueError(f"Cannot parse decimal from {value!r}")


def parse_defaults(data: dict[str, Any]) -> SchedulingDefaults:
    """Parse SchedulingDefaults; absent keys keep the documented defaults."""
    base = SchedulingDefaults()
    return SchedulingDefaults(
        hours_per_day=int(data.get("hours_per_day", base.hours_per_day)),
        target_crew_days=int(data.get("target_crew_days", base.target_crew_days)),
        default_productivity=parse_decimal(
            data.get("default_productivity", base.default_productivity)
        ),
        split_crew_threshold=int(
            data.get("split_crew_threshold", base.split_crew_threshold)
        ),
    )


def parse_phase(data: dict[str, Any]) -> PhaseDefinition:
    return PhaseDefinition(
        phase=ConstructionPhase.parse(data["phase"]),
        name=data["name"],
        labor_role=data["labor_role"],
        labor_rate=parse_decimal(data["labor_rate"]),
    )


def parse_relation(data: dict[str, Any]) -> PhaseRelation:
    return PhaseRelation(
        phase=ConstructionPhase.parse(data["phase"]),
        predecessor=ConstructionPhase.parse(data["predecessor"]),
        lag_days=int(data.get("lag_days", 0)),
        overlap_days=int(data.get("overlap_days", 0)),
        reason=data.get("reason", ""),
    )


def parse_trade(data: dict[str, Any]) -> TradeDefinition:
    return TradeDefinition(
        code=data["code"],
        rank=int(data["rank"]),
        keywords=tuple(str(k) for k in data["keywords"]),
    )


def parse_trade_lag(data: dict[str, Any]) -> TradeLagRule:
    return TradeLagRule(
        from_trade=data["from"],
        to_trade=data["to"],
        lag_days=int(data["lag_days"]),
        reason=data.get("reason", ""),
    )


def parse_overlap_rule(data: dict[str, Any]) -> PhaseOverlapRule:
    return PhaseOverlapRule(
        phase1=ConstructionPhase.parse(data["phase1"]),
        phase2=ConstructionPhase.parse(data["phase2"]),
        can_overlap=bool(data["can_overlap"]),
        minimum_gap_days=int(data.get("minimum_gap_days", 0)),
        reason=data.get("reason", ""),
    )


def parse_rulebook(data: dict[str, Any]) -> SequencingRules:
    """
    Parse a complete ``SequencingRules`` from a rule book dict.

    Preconditions:
        - ``data`` contains ``name`` and a non-empty ``phases`` list.
    Postconditions:
        - ``checksum`` is the SHA-256 of ``data``'s canonical JSON form.
        - ``productivity`` is sorted by price code.
    """
    productivity = tuple(
        sorted(
            (str(code), parse_decimal(rate))
            for code, rate in (data.get("productivity") or {}).items()
        )
    )
    return SequencingRules(
        name=data["name"],
        version=int(data.get("version", 1)),
        phases=tuple(parse_phase(p) for p in data["phases"]),
        relations=tuple(parse_relation(r) for r in data.get("relations") or ()),
        trades=tuple(parse_trade(t) for t in data.get("trades") or ()),
        trade_lags=tuple(
            parse_trade_lag(t) for t in data.get("trade_lags") or ()
        ),
        productivity=productivity,
        overlap_rules=tuple(
            parse_overlap_rule(r) for r in data.get("overlap_rules") or ()
        ),
        defaults=parse_defaults(data.get("defaults") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
