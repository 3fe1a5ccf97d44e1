"""
site_config -- single public entrypoint for the sequencing rule book.

Responsibility:
    Provides ``load_rulebook()``, the only way to obtain a validated
    ``SequencingRules``.  Engines never read configuration; callers load a
    rule book here and pass it in explicitly.

Architecture position:
    Configuration -- YAML-driven, sits beside ``site_kernel``.  The kernel
    and engines MUST NEVER import from ``site_config``.

Invariants enforced:
    - Validation: a rule book with errors is never returned.
    - Deterministic: the same YAML always yields the same checksum.
    - No caching: every call reads, parses and validates afresh.

Failure modes:
    - ``FileNotFoundError`` -- rule book path does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``KeyError`` / ``ValueError`` -- missing keys or invalid values.
    - ``RuleBookValidationError`` -- cross-reference validation failed.

Audit relevance:
    Every successful load emits a ``SITE_CONFIG_TRACE`` log entry with the
    rule book name, version and checksum, tying each generated schedule to
    the exact rules that sequenced it.
"""

from __future__ import annotations

from pathlib import Path

from site_config.loader import load_yaml_file, parse_rulebook
from site_config.validator import RuleBookValidationResult, validate_rulebook
from site_kernel.domain.rules import SequencingRules
from site_kernel.exceptions import RuleBookValidationError
from site_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_RULEBOOK = Path(__file__).parent / "rulebooks" / "construction.yaml"


def load_rulebook(path: Path | str | None = None) -> SequencingRules:
    """Load, parse and validate a sequencing rule book.

    Args:
        path: Rule book YAML. Defaults to the bundled construction rules.

    Returns:
        A frozen, validated ``SequencingRules``.

    Raises:
        RuleBookValidationError: If validation reports errors.
    """
    source = Path(path) if path is not None else DEFAULT_RULEBOOK
    rules = parse_rulebook(load_yaml_file(source))

    validation = validate_rulebook(rules)
    if not validation.is_valid:
        raise RuleBookValidationError(tuple(validation.errors), source=str(source))
    for warning in validation.warnings:
        _logger.warning(
            "rulebook_warning",
            extra={"rulebook": rules.name, "detail": warning},
        )

    _logger.info(
        "SITE_CONFIG_TRACE",
        extra={
            "trace_type": "SITE_CONFIG_TRACE",
            "rulebook": rules.name,
            "rulebook_version": rules.version,
            "checksum": rules.checksum,
            "phase_count": len(rules.phases),
            "relation_count": len(rules.relations),
            "trade_count": len(rules.trades),
        },
    )
    return rules


__all__ = [
    "DEFAULT_RULEBOOK",
    "RuleBookValidationResult",
    "load_rulebook",
    "validate_rulebook",
]
