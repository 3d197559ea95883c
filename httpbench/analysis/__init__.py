"""Reporting utilities."""

from httpbench.analysis.report import format_report, print_report, save_summary

__all__ = ["format_report", "print_report", "save_summary"]
