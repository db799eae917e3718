"""Pure-function rules engine pattern.

Rules are stateless functions: (entity, context) -> RuleResult.
No database, no side effects. This makes them:
- Trivially testable (pure input/output)
- Composable (chain multiple rules)
- Auditable (deterministic, explainable)

Example domain: an agency checking who may change what, and whether a
form is complete enough to write.
"""

from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class RuleResult:
    """Outcome of a single rule evaluation."""

    passed: bool
    rule_name: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleSetResult:
    """Aggregate outcome of multiple rules."""

    all_passed: bool
    results: list[RuleResult]
    failed: list[RuleResult] = field(default_factory=list)

    def __post_init__(self):
        self.failed = [r for r in self.results if not r.passed]
        self.all_passed = len(self.failed) == 0

    @property
    def message(self) -> str:
        return "; ".join(r.message for r in self.failed)


# ---------------------------------------------------------------------------
# Authorization rules
# ---------------------------------------------------------------------------

def check_admin_role(user: dict | None, action: str) -> RuleResult:
    """Check that the acting team user is an ADMIN."""
    role = (user or {}).get("role")
    passed = role == "ADMIN"

    return RuleResult(
        passed=passed,
        rule_name="admin_role",
        message="Admin access granted" if passed else f"Admin only: {action}.",
        details={"role": role, "action": action},
    )


def check_team_member_change(
    actor_id: str | None,
    target_id: str,
    patch: dict | None = None,
    deleting: bool = False,
) -> RuleResult:
    """Stop an admin from locking themselves out.

    Rules:
    - Nobody may delete their own team record
    - Nobody may downgrade their own role to STAFF
    """
    own_record = actor_id is not None and actor_id == target_id
    reasons = []
    if own_record and deleting:
        reasons.append("You cannot delete yourself")
    if own_record and (patch or {}).get("role") == "STAFF":
        reasons.append("You cannot downgrade your own role")

    return RuleResult(
        passed=not reasons,
        rule_name="team_member_change",
        message="Change allowed" if not reasons else "; ".join(reasons),
        details={"own_record": own_record, "deleting": deleting},
    )


# ---------------------------------------------------------------------------
# Form rules
# ---------------------------------------------------------------------------

def check_required_fields(data: dict, fields: list[str]) -> RuleResult:
    """Check that every named field is present and not blank."""
    missing = []
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)

    return RuleResult(
        passed=not missing,
        rule_name="required_fields",
        message="All required fields present" if not missing else f"Missing required fields: {', '.join(missing)}",
        details={"missing": missing},
    )


def check_has_services(services: list | None, min_services: int = 1) -> RuleResult:
    """A project needs at least one service."""
    count = len(services or [])
    passed = count >= min_services

    return RuleResult(
        passed=passed,
        rule_name="has_services",
        message=f"{count} service(s)" if passed else f"At least {min_services} service is required",
        details={"count": count},
    )


def check_default_assignee(auto_create_tasks: bool, default_assignee: str | None) -> RuleResult:
    """Auto-created tasks need someone to own them."""
    passed = not auto_create_tasks or bool(default_assignee)

    return RuleResult(
        passed=passed,
        rule_name="default_assignee",
        message="Default assignee set" if passed else "A default assignee is required to auto-create tasks",
        details={"auto_create_tasks": auto_create_tasks},
    )


# ---------------------------------------------------------------------------
# Rule composition
# ---------------------------------------------------------------------------

def evaluate_rules(*rules: RuleResult) -> RuleSetResult:
    """Compose multiple rule results into a single aggregate.

    Example::

        result = evaluate_rules(
            check_required_fields(form, ["client_id", "name"]),
            check_has_services(form["services"]),
        )
        if not result.all_passed:
            raise ValidationFailed(result.message)
    """
    return RuleSetResult(
        all_passed=all(r.passed for r in rules),
        results=list(rules),
    )
