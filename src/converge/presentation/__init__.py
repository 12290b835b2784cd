"""Presentation layer - human-friendly formatting."""

from .human_formatter import format_plan, format_report, format_state_list, format_state_show

__all__ = ["format_plan", "format_report", "format_state_list", "format_state_show"]
