"""Agency business rules — pure functions.

Re-exports the rules engine checks the tracker service applies before
any write.
"""

from patterns.rules_engine import (
    RuleResult,
    RuleSetResult,
    check_admin_role,
    check_default_assignee,
    check_has_services,
    check_required_fields,
    check_team_member_change,
    evaluate_rules,
)

__all__ = [
    "RuleResult",
    "RuleSetResult",
    "check_admin_role",
    "check_default_assignee",
    "check_has_services",
    "check_required_fields",
    "check_team_member_change",
    "evaluate_rules",
]
