"""
Rule Book Validator (``site_config.validator``).

Responsibility
--------------
Validates a parsed ``SequencingRules`` for cross-reference integrity before
it is handed to the engines.

Invariants enforced
-------------------
* Every phase of the taxonomy is defined exactly once.
* Phase relations point backwards in taxonomy order (no forward edges, so
  the phase graph is acyclic by construction).
* Trade codes are unique; trade lag rules reference declared trades.
* Trade keywords are lowercase (descriptions are lowercased before
  matching).
* Productivity rates are non-negative.

Failure modes
-------------
* Validation errors (``RuleBookValidationResult.errors``)  -> the rule book
  MUST NOT be used.
* Validation warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from site_kernel.domain.phases import PHASE_ORDER
from site_kernel.domain.rules import SequencingRules


@dataclass
class RuleBookValidationResult:
    """
    Result of rule book validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_rulebook(rules: SequencingRules) -> RuleBookValidationResult:
    """
    Validate a rule book.

    Postconditions:
        - Returns a ``RuleBookValidationResult``; never raises.
    """
    result = RuleBookValidationResult()
    _check_phases(rules, result)
    _check_relations(rules, result)
    _check_trades(rules, result)
    _check_productivity(rules, result)
    _check_overlap_rules(rules, result)
    return result


def _check_phases(rules: SequencingRules, result: RuleBookValidationResult) -> None:
    counts = Counter(p.phase for p in rules.phases)
    for phase in PHASE_ORDER:
        if counts[phase] == 0:
            result.add_error(f"Phase '{phase.value}' has no definition")
        elif counts[phase] > 1:
            result.add_error(f"Phase '{phase.value}' is defined {counts[phase]} times")


def _check_relations(rules: SequencingRules, result: RuleBookValidationResult) -> None:
    seen: set[tuple[str, str]] = set()
    for rel in rules.relations:
        key = (rel.phase.value, rel.predecessor.value)
        if rel.predecessor.order >= rel.phase.order:
            result.add_error(
                f"Relation {rel.predecessor.value} -> {rel.phase.value} points "
                f"forward in phase order"
            )
        if key in seen:
            result.add_warning(
                f"Duplicate relation {rel.predecessor.value} -> {rel.phase.value}"
            )
        seen.add(key)


def _check_trades(rules: SequencingRules, result: RuleBookValidationResult) -> None:
    codes = Counter(t.code for t in rules.trades)
    for code, count in sorted(codes.items()):
        if count > 1:
            result.add_error(f"Trade '{code}' is defined {count} times")

    ranks = Counter(t.rank for t in rules.trades)
    for rank, count in sorted(ranks.items()):
        if count > 1:
            result.add_warning(f"{count} trades share rank {rank}")

    for trade in rules.trades:
        if not trade.keywords:
            result.add_error(f"Trade '{trade.code}' has no keywords")
        for keyword in trade.keywords:
            if keyword != keyword.lower():
                result.add_error(
                    f"Trade '{trade.code}' keyword '{keyword}' must be lowercase"
                )

    by_code = {t.code: t for t in rules.trades}
    for lag in rules.trade_lags:
        src = by_code.get(lag.from_trade)
        dst = by_code.get(lag.to_trade)
        if src is None:
            result.add_error(f"Trade lag references unknown trade '{lag.from_trade}'")
        if dst is None:
            result.add_error(f"Trade lag references unknown trade '{lag.to_trade}'")
        if src is not None and dst is not None and src.rank >= dst.rank:
            result.add_warning(
                f"Trade lag {lag.from_trade} -> {lag.to_trade} never applies: "
                f"'{lag.to_trade}' does not rank after '{lag.from_trade}'"
            )


def _check_productivity(rules: SequencingRules, result: RuleBookValidationResult) -> None:
    for code, rate in rules.productivity:
        if rate < 0:
            result.add_error(f"Productivity for '{code}' is negative: {rate}")
        elif rate == 0:
            result.add_warning(f"Productivity for '{code}' is zero")


def _check_overlap_rules(rules: SequencingRules, result: RuleBookValidationResult) -> None:
    for rule in rules.overlap_rules:
        if rule.phase1 is rule.phase2:
            result.add_error(
                f"Overlap rule pairs phase '{rule.phase1.value}' with itself"
            )
        if rule.can_overlap and rule.minimum_gap_days:
            result.add_warning(
                f"Overlap rule {rule.phase1.value}/{rule.phase2.value} allows "
                f"overlap but declares a minimum gap"
            )
