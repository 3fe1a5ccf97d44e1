"""Tests for engine tracing and input fingerprints."""

import logging
from datetime import date
from decimal import Decimal

from site_engines.critical_path import analyze_critical_path
from site_engines.tracer import compute_input_fingerprint, traced_engine
from site_kernel.domain import ScheduleOptions
from tests.conftest import make_task


class TestFingerprint:
    """Fingerprints are stable and input-sensitive."""

    def test_stable(self):
        args = {"options": ScheduleOptions(), "start": date(2025, 1, 1)}
        first = compute_input_fingerprint(("options", "start"), args)
        second = compute_input_fingerprint(("options", "start"), dict(args))
        assert first == second
        assert len(first) == 16

    def test_decimal_normalized(self):
        """2.0 and 2.00 are the same input."""
        a = compute_input_fingerprint(("x",), {"x": Decimal("2.0")})
        b = compute_input_fingerprint(("x",), {"x": Decimal("2.00")})
        assert a == b

    def test_sensitive_to_values(self):
        a = compute_input_fingerprint(("options",), {"options": ScheduleOptions(max_workers=5)})
        b = compute_input_fingerprint(("options",), {"options": ScheduleOptions(max_workers=6)})
        assert a != b

    def test_dict_key_order_irrelevant(self):
        a = compute_input_fingerprint(("m",), {"m": {1: 2, 3: 4}})
        b = compute_input_fingerprint(("m",), {"m": {3: 4, 1: 2}})
        assert a == b

    def test_missing_field_is_null(self):
        a = compute_input_fingerprint(("absent",), {})
        b = compute_input_fingerprint(("absent",), {"absent": None})
        assert a == b


class TestTracedEngine:
    """Every traced call emits one SITE_ENGINE_TRACE record."""

    def test_trace_record(self, caplog):
        with caplog.at_level(logging.INFO, logger="site_kernel"):
            analyze_critical_path([make_task(1, 0, 2)])
        traces = [r for r in caplog.records if r.getMessage() == "SITE_ENGINE_TRACE"]
        assert len(traces) == 1
        record = traces[0]
        assert record.engine_name == "critical_path"
        assert record.engine_version == "1.0"
        assert len(record.input_fingerprint) == 16
        assert record.duration_ms >= 0

    def test_same_input_same_fingerprint(self, caplog):
        with caplog.at_level(logging.INFO, logger="site_kernel"):
            analyze_critical_path([make_task(1, 0, 2)])
            analyze_critical_path(tasks=[make_task(1, 0, 2)])
        prints = [
            r.input_fingerprint for r in caplog.records
            if r.getMessage() == "SITE_ENGINE_TRACE"
        ]
        assert prints[0] == prints[1]

    def test_wrapped_function_result_and_name(self):
        @traced_engine("doubler", "0.1", fingerprint_fields=("value",))
        def double(value):
            """Double it."""
            return value * 2

        assert double(4) == 8
        assert double.__name__ == "double"
        assert double.__doc__ == "Double it."
