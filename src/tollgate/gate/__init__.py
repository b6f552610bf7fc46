"""
Test Gate package: run test subsets, trust only structured reports.
"""

from .reports import JUnitCounts, ReportError, parse_coverage, parse_junit
from .runner import GateConfig, TestGate

__all__ = ["TestGate", "GateConfig", "JUnitCounts", "ReportError", "parse_junit", "parse_coverage"]
