"""
Workflows Package for the Compliance Engine.

This package provides the notify/audit and reconcile workflows.
"""

from .base_workflow import BaseWorkflow, WorkflowStep
from .helpers import create_run_summary, render_template
from .notifier import NotifyWorkflow
from .reconciler import ReconcileWorkflow

__all__ = [
    "BaseWorkflow",
    "WorkflowStep",
    "NotifyWorkflow",
    "ReconcileWorkflow",
    "create_run_summary",
    "render_template",
]
