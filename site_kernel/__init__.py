"""
Site Kernel - construction scheduling domain core

Frozen value objects, typed exceptions, structured logging and an
injectable clock shared by the scheduling engines:
- Phase-classified WBS and cost matches
- Dated schedules, floats, critical-chain buffers
- Project resource totals and sequencing rule books
"""

__version__ = "0.1.0"
