"""
Typed Exception Hierarchy for the Scheduling Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Schedules are consumed positionally by exporters and dashboards, so callers
must be able to tell "this WBS is unusable" apart from "this rule book is
broken" without parsing message strings.

  1. Every fatal error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Recoverable conditions (zero quantities, unmatched costs, unknown progress
uids, zero capacity) are NOT exceptions. Engines record them as
``ScheduleWarning`` values and log them; only structurally malformed input
raises.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SiteKernelError (base)
    |
    +-- ScheduleInputError
    |   +-- MalformedWbsError
    |   +-- ScheduleCycleError
    |   +-- UnknownTaskReferenceError
    |
    +-- ConfigurationError
        +-- RuleBookValidationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | MALFORMED_WBS               | Duplicate article codes, wrong shape
                | SCHEDULE_CYCLE              | Task relations contain a cycle
                | UNKNOWN_TASK_REFERENCE      | Relation names a uid not in the graph
----------------|-----------------------------|-----------------------------------------
Configuration   | RULE_BOOK_INVALID           | Rule book failed validation

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        schedule = generate_schedule(project, matches, options, rules)
    except ScheduleCycleError as e:
        report(code=e.code, uids=e.cycle_uids)
    except ScheduleInputError as e:
        log.error(f"Schedule input rejected: {e.code}")
"""


class SiteKernelError(Exception):
    """
    Base exception for all scheduling kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SITE_KERNEL_ERROR"


# Schedule input exceptions


class ScheduleInputError(SiteKernelError):
    """Base exception for structurally malformed scheduling input."""

    code: str = "SCHEDULE_INPUT_ERROR"


class MalformedWbsError(ScheduleInputError):
    """The WBS tree cannot be scheduled at all."""

    code: str = "MALFORMED_WBS"

    def __init__(self, reason: str, article_code: str | None = None):
        self.reason = reason
        self.article_code = article_code
        detail = f" (article {article_code})" if article_code else ""
        super().__init__(f"Malformed WBS: {reason}{detail}")


class ScheduleCycleError(ScheduleInputError):
    """Task relations form a cycle; no topological order exists."""

    code: str = "SCHEDULE_CYCLE"

    def __init__(self, cycle_uids: tuple[int, ...]):
        self.cycle_uids = cycle_uids
        super().__init__(
            f"Task relations contain a cycle through uids: {list(cycle_uids)}"
        )


class UnknownTaskReferenceError(ScheduleInputError):
    """A relation references a task uid that is not part of the graph."""

    code: str = "UNKNOWN_TASK_REFERENCE"

    def __init__(self, task_uid: int, referenced_uid: int):
        self.task_uid = task_uid
        self.referenced_uid = referenced_uid
        super().__init__(
            f"Task {task_uid} references unknown predecessor {referenced_uid}"
        )


# Configuration exceptions


class ConfigurationError(SiteKernelError):
    """Base exception for rule book / configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class RuleBookValidationError(ConfigurationError):
    """The sequencing rule book failed validation."""

    code: str = "RULE_BOOK_INVALID"

    def __init__(self, errors: tuple[str, ...], source: str | None = None):
        self.errors = errors
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(
            f"Rule book validation failed{where}: " + "; ".join(errors)
        )
