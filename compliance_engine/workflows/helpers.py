"""
Workflow Helper Functions for the Compliance Engine.

Utility functions for rendering issue text and summarizing runs.
"""

import logging
from string import Template
from typing import Any, Dict

from ..models import RunResult

logger = logging.getLogger(__name__)


def render_template(template: str, org: str, repo: str, user: str) -> str:
    """
    Substitute $org, $repo and $user in a message template.

    Unknown placeholders are left untouched.

    Args:
        template: Template text
        org: Organization name
        repo: Repository name
        user: User login

    Returns:
        Rendered text
    """
    return Template(template).safe_substitute(org=org, repo=repo, user=user)


def create_run_summary(result: RunResult) -> Dict[str, Any]:
    """
    Create a summary of a run for display and auditing.

    Args:
        result: RunResult object

    Returns:
        Dictionary with run summary
    """
    successful_actions = len([a for a in result.actions_taken if a.get('success', False)])
    total_actions = len(result.actions_taken)

    return {
        'run_id': result.run_id,
        'mode': result.mode.value,
        'started_at': result.started_at.isoformat() if result.started_at else None,
        'completed_at': result.completed_at.isoformat() if result.completed_at else None,
        'success': result.success,
        'violations': len(result.violations),
        'total_actions': total_actions,
        'successful_actions': successful_actions,
        'failed_actions': total_actions - successful_actions,
        'error_count': len(result.errors),
        'errors': result.errors,
    }
