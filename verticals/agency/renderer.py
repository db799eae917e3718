"""Follow-up message renderers for the agency vertical.

Registers one renderer per follow-up kind with the template engine. The
wording is what the team sends over WhatsApp, so it stays in the team's
own register.
"""

from typing import Any, Dict

from core.engine.template_engine import fmt_date, fmt_text, register_renderer

FOLLOWUP_OVERDUE = "followup_overdue"
FOLLOWUP_STALE = "followup_stale"
TASK_STATUS_CHECK = "task_status_check"


def render_overdue(ctx: Dict[str, Any]) -> str:
    return (
        f"Bro {fmt_text(ctx.get('assignee_name'), 'team')}, task ni dah overdue ya 🙏\n"
        "\n"
        f"Client: {fmt_text(ctx.get('client_name'))}\n"
        f"Project: {fmt_text(ctx.get('project_name'))}\n"
        f"Task: {fmt_text(ctx.get('task_title'))}\n"
        f"Due: {fmt_date(ctx.get('due_date'))}\n"
        "\n"
        "Boleh update status sekarang (TODO / IN_PROGRESS / BLOCKED / DONE) + next action?"
    )


def render_stale(ctx: Dict[str, Any]) -> str:
    return (
        f"Bro {fmt_text(ctx.get('assignee_name'), 'team')}, boleh update sekejap status task ni ya 🙏\n"
        "\n"
        f"Client: {fmt_text(ctx.get('client_name'))}\n"
        f"Project: {fmt_text(ctx.get('project_name'))}\n"
        f"Task: {fmt_text(ctx.get('task_title'))}\n"
        f"Last update: {fmt_date(ctx.get('last_update_at'))}\n"
        "\n"
        "Status sekarang & next action apa bro?"
    )


def render_status_check(ctx: Dict[str, Any]) -> str:
    blocked_line = ""
    if ctx.get("status") == "BLOCKED":
        blocked_line = f"\nBLOCKED reason: {fmt_text(ctx.get('blocked_reason'), '(not set)')}"

    return (
        f"Bro {fmt_text(ctx.get('assignee_name'), 'team')}, boleh update status task ni ya 🙏\n"
        "\n"
        f"Client: {fmt_text(ctx.get('client_name'))}\n"
        f"Project: {fmt_text(ctx.get('project_name'))}\n"
        f"Service: {fmt_text(ctx.get('service_type'))}\n"
        f"Task: {fmt_text(ctx.get('task_title'))}\n"
        f"Status: {fmt_text(ctx.get('status'))}{blocked_line}\n"
        f"Due: {fmt_date(ctx.get('due_date'))}\n"
        f"Last update: {fmt_date(ctx.get('last_update_at'))}\n"
        "\n"
        "Status sekarang & next action apa bro?"
    )


# Auto-register on import
register_renderer(FOLLOWUP_OVERDUE, render_overdue)
register_renderer(FOLLOWUP_STALE, render_stale)
register_renderer(TASK_STATUS_CHECK, render_status_check)
