from datetime import datetime
from pathlib import Path
from typing import Any

import jinja2
from rich.table import Table

from .planner import Action, Drift, Plan

ACTION_STYLES = {
    Action.CREATE: "green",
    Action.UPDATE: "yellow",
    Action.REPLACE: "magenta",
    Action.DELETE: "red",
}


def _short(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, list):
        return ", ".join(_short(v) for v in value) or "[]"
    if isinstance(value, dict):
        return " ".join(f"{k}={_short(v)}" for k, v in value.items())
    return str(value)


def plan_to_dict(plan: Plan) -> dict[str, Any]:
    """JSON-friendly view of a plan."""
    return {
        "environment": plan.environment,
        "summary": plan.summary(),
        "phases": [
            [
                {
                    "address": op.address,
                    "action": op.action.value,
                    "reason": op.reason,
                    "changes": {
                        name: {"before": before, "after": after}
                        for name, (before, after) in op.changes.items()
                    },
                    "self_link": op.record.self_link if op.record else None,
                }
                for op in phase
            ]
            for phase in plan.phases
        ],
        "drift": [
            {
                "address": d.address,
                "field": d.field,
                "recorded": d.recorded if d.field else None,
                "live": d.live,
                "missing": d.missing,
            }
            for d in plan.drifts
        ],
    }


def render_plan_table(plan: Plan) -> Table:
    table = Table(title=f"Plan: {plan.environment}")
    table.add_column("Phase", justify="right", style="dim")
    table.add_column("Action")
    table.add_column("Address", style="cyan")
    table.add_column("Details")

    for index, phase in enumerate(plan.phases, start=1):
        for op in phase:
            style = ACTION_STYLES[op.action]
            if op.changes:
                details = "; ".join(
                    f"{name}: {_short(before)} -> {_short(after)}"
                    for name, (before, after) in op.changes.items()
                )
            else:
                details = op.reason or ""
            table.add_row(
                str(index),
                f"[{style}]{op.action.value}[/{style}]",
                op.address,
                details,
            )
    return table


def render_drift_table(drifts: list[Drift]) -> Table:
    table = Table(title="Drift")
    table.add_column("Address", style="cyan")
    table.add_column("Field")
    table.add_column("Recorded")
    table.add_column("Live")
    for d in drifts:
        if d.missing:
            table.add_row(d.address, "[red]deleted outside vpcplan[/red]", "", "")
        else:
            table.add_row(d.address, str(d.field), _short(d.recorded), _short(d.live))
    return table


def generate_plan_report(plan: Plan, output_path: str) -> None:
    """
    Writes an HTML report of the plan and any detected drift.
    """
    template_dir = Path(__file__).parent / "templates"
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(template_dir)),
        autoescape=jinja2.select_autoescape(["html", "xml"]),
    )
    env.filters["short"] = _short

    template = env.get_template("plan.html")
    html_content = template.render(
        data=plan_to_dict(plan),
        total=len(plan.operations),
        generated=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )

    with Path(output_path).open("w") as f:
        f.write(html_content)
