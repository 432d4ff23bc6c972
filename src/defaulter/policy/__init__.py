"""Stream selection rules and their evaluation.

Public API:
- select: pick one track from candidates with an ordered rule chain
- resolve / resolve_parts / plan_updates: build UpdatePlans for parts
- build_library_rules: convert validated config filters to GroupRules
"""

from defaulter.policy.exceptions import PolicyError, RuleConfigurationError
from defaulter.policy.loader import GroupFiltersModel, build_library_rules
from defaulter.policy.matcher import satisfies, select
from defaulter.policy.models import (
    DISABLED,
    DISABLED_MATCH,
    GroupRules,
    MatchRule,
    OnMatch,
    RuleChain,
    TrackMatch,
)
from defaulter.policy.resolver import plan_updates, resolve, resolve_parts

__all__ = [
    "DISABLED",
    "DISABLED_MATCH",
    "GroupFiltersModel",
    "GroupRules",
    "MatchRule",
    "OnMatch",
    "PolicyError",
    "RuleChain",
    "RuleConfigurationError",
    "TrackMatch",
    "build_library_rules",
    "plan_updates",
    "resolve",
    "resolve_parts",
    "satisfies",
    "select",
]
