"""
Policy Engine Package.

This package provides the compliance policy and the evaluation functions
that turn membership data into violations.
"""

from .evaluator import evaluate, filter_violations, is_bot_login, recently_added_logins
from .policy import CompliancePolicy, load_policy

__all__ = [
    "CompliancePolicy",
    "load_policy",
    "evaluate",
    "filter_violations",
    "is_bot_login",
    "recently_added_logins",
]
