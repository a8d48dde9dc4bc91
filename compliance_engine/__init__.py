"""
Compliance Engine

Compliance automation for GitHub organizations: finds members without a
verified domain email, tracks them with issues, honors administrator-granted
exemptions and removes members who stay non-compliant.
"""

__version__ = "1.0.0"
__author__ = "Compliance Engine Team"
__email__ = "team@example.com"

from .engine.evaluator import evaluate, filter_violations
from .engine.policy import CompliancePolicy, load_policy
from .workflows.notifier import NotifyWorkflow
from .workflows.reconciler import ReconcileWorkflow

__all__ = [
    "CompliancePolicy",
    "load_policy",
    "evaluate",
    "filter_violations",
    "NotifyWorkflow",
    "ReconcileWorkflow",
]
