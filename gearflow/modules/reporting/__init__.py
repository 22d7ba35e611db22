"""Reporting module: fetch, aggregate, analyse and render usage reports."""

from gearflow.modules.reporting.report_engine import ReportBundle, ReportEngine
from gearflow.modules.reporting.report_renderer import ReportRenderer

__all__ = [
    "ReportBundle",
    "ReportEngine",
    "ReportRenderer",
]
