"""Human-friendly output formatter - converts plans, reports and state to readable text."""

import json
import os
from typing import Any, Dict, List, Optional
from ..executor.models import ResourceStatus, RunReport
from ..plan.models import Action, Plan, PlannedChange, ReplaceOrder
from ..plan.references import UNKNOWN, as_reference
from ..state.models import ResourceState


def _use_ascii(ascii_mode: Optional[bool] = None) -> bool:
    """Resolve whether to use ASCII output (checked at format time)."""
    if ascii_mode is not None:
        return bool(ascii_mode)
    return os.environ.get("CONVERGE_ASCII", "").lower() in ("1", "true", "yes")


def _box(title: str, width: int = 65, ascii_mode: bool = False) -> List[str]:
    """Return box-drawing header lines."""
    b = {"tl": "+", "tr": "+", "h": "-", "v": "|"} if ascii_mode else {"tl": "┌", "tr": "┐", "h": "─", "v": "│"}
    h = b["h"] * (width - 2)
    return [
        b["tl"] + h + b["tr"],
        f"{b['v']} {title:<{width - 4}} {b['v']}",
        ("+" if ascii_mode else "└") + h + ("+" if ascii_mode else "┘"),
        "",
    ]


def _section(title: str, width: int = 65) -> List[str]:
    """Return section divider."""
    h = "-" * width
    return [h, title.center(width), h]


ACTION_SYMBOLS = {
    Action.CREATE: "+",
    Action.UPDATE: "~",
    Action.REPLACE: "-/+",
    Action.DELETE: "-",
    Action.NO_OP: " ",
}

STATUS_LABELS = {
    ResourceStatus.SUCCEEDED: "[OK]",
    ResourceStatus.FAILED: "[FAIL]",
    ResourceStatus.SKIPPED: "[SKIP]",
    ResourceStatus.PENDING: "[....]",
    ResourceStatus.IN_PROGRESS: "[....]",
}


def _render_value(value: Any, resolved: Any = UNKNOWN) -> str:
    reference = as_reference(value)
    if reference is not None:
        if resolved is UNKNOWN:
            return f"${{{reference}}} (known after apply)"
        return f"{_render_value(resolved)} (from ${{{reference}}})"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return json.dumps(value, default=str)


def _change_lines(change: PlannedChange) -> List[str]:
    symbol = ACTION_SYMBOLS[change.action]
    header = f"  {symbol:>3} {change.address}"
    if change.action == Action.REPLACE:
        order = "create before destroy" if change.replace_order == ReplaceOrder.CREATE_BEFORE_DESTROY else "destroy before create"
        header += f" ({order})"
    lines = [header]
    if change.reason:
        lines.append(f"        # {change.reason}")

    if change.action in (Action.CREATE, Action.UPDATE, Action.REPLACE):
        desired = change.desired or {}
        prior = change.prior.attributes if change.prior else {}
        fields = sorted(desired) if change.action == Action.CREATE else list(change.changed_fields)
        for name in fields:
            if name not in desired:
                continue
            new = _render_value(desired[name], change.resolved.get(name, UNKNOWN))
            if change.action == Action.CREATE:
                lines.append(f"        {name} = {new}")
            else:
                lines.append(f"        {name}: {_render_value(prior.get(name))} -> {new}")
    elif change.action == Action.DELETE and change.prior is not None:
        lines.append(f"        id = {change.prior.identifier}")
    for identifier in change.deposed:
        lines.append(f"        deposed object {identifier} will be deleted")
    return lines


def format_plan(plan: Plan, ascii_mode: Optional[bool] = None) -> str:
    """
    Format a Plan as readable text.

    Args:
        plan: Computed plan
        ascii_mode: Force ASCII box drawing (defaults to CONVERGE_ASCII)

    Returns:
        Multi-line string
    """
    ascii_mode = _use_ascii(ascii_mode)
    title = "CONVERGE DESTROY PLAN" if plan.metadata.destroy else "CONVERGE PLAN"
    lines = _box(title, ascii_mode=ascii_mode)

    if not plan.has_changes():
        lines.append("No changes. Infrastructure matches the configuration.")
        return "\n".join(lines)

    for change in plan.changes:
        if not change.has_effect:
            continue
        lines.extend(_change_lines(change))
        lines.append("")

    summary = plan.summary()
    lines.extend(_section("SUMMARY"))
    lines.append(
        f"Plan: {summary['create']} to create, {summary['update']} to update, "
        f"{summary['replace']} to replace, {summary['delete']} to delete, "
        f"{summary['no-op']} unchanged."
    )
    if summary["deposed"]:
        lines.append(f"{summary['deposed']} deposed objects from earlier replacements to delete.")
    return "\n".join(lines)


def format_report(report: RunReport, ascii_mode: Optional[bool] = None) -> str:
    """Format a RunReport as a run summary listing every address."""
    ascii_mode = _use_ascii(ascii_mode)
    lines = _box("APPLY SUMMARY", ascii_mode=ascii_mode)

    for result in report.results:
        if result.action == Action.NO_OP and result.status == ResourceStatus.SUCCEEDED:
            continue
        label = STATUS_LABELS[result.status]
        line = f"{label:<7} {result.action.value:<8} {result.address}"
        if result.error:
            line += f"\n        error: {result.error}"
        elif result.reason:
            line += f"\n        {result.reason}"
        lines.append(line)

    counts = report.counts()
    lines.append("")
    lines.append(
        f"{counts['succeeded']} succeeded, {counts['failed']} failed, {counts['skipped']} skipped."
    )
    if report.cancelled:
        lines.append("Run was cancelled; unstarted resources were skipped.")
    lines.append("Apply complete." if report.success else "Apply finished with errors.")
    return "\n".join(lines)


def format_state_list(states: Dict[str, ResourceState]) -> str:
    """One address per line, annotated with non-synced freshness."""
    lines = []
    for address in sorted(states):
        state = states[address]
        suffix = "" if state.freshness.value == "synced" else f" ({state.freshness.value})"
        lines.append(f"{address}{suffix}")
    return "\n".join(lines)


def format_state_show(state: ResourceState) -> str:
    """Detailed view of one state entry."""
    lines = [
        f"# {state.address}",
        f"kind       = {state.kind}",
        f"identifier = {state.identifier}",
        f"freshness  = {state.freshness.value}",
        f"updated_at = {state.updated_at.isoformat()}",
    ]
    if state.dependencies:
        lines.append(f"depends_on = {', '.join(state.dependencies)}")
    if state.deposed:
        lines.append(f"deposed    = {', '.join(state.deposed)}")
    lines.append("")
    width = max((len(name) for name in state.attributes), default=0)
    for name in sorted(state.attributes):
        lines.append(f"{name:<{width}} = {_render_value(state.attributes[name])}")
    return "\n".join(lines)
