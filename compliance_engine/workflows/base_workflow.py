"""
Base Workflow Classes for the Compliance Engine.

This module provides the foundation for the notify and reconcile workflows
with common functionality for executing platform operations, recording
errors and writing audit records.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..audit.audit_logger import AuditLogger
from ..connectors import BaseConnector, ConnectorError, ConnectorResult
from ..engine.policy import CompliancePolicy
from ..models import ActionMode, AuditRecord, RunResult, utcnow
from .helpers import render_template

logger = logging.getLogger(__name__)


class WorkflowStep:
    """Represents a single platform operation performed by a workflow."""

    def __init__(self, action: str, login: str, resource: str = "",
                 parameters: Optional[Dict[str, Any]] = None):
        self.action = action
        self.login = login
        self.resource = resource
        self.parameters = parameters or {}
        self.executed_at: Optional[datetime] = None
        self.success: bool = False
        self.error: Optional[str] = None
        self.result: Optional[Any] = None

    def mark_success(self, result: Any = None):
        """Mark step as successful."""
        self.executed_at = utcnow()
        self.success = True
        self.result = result

    def mark_failure(self, error: str):
        """Mark step as failed."""
        self.executed_at = utcnow()
        self.success = False
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert step to dictionary for serialization."""
        result = self.result
        if hasattr(result, "model_dump"):
            result = result.model_dump(mode="json")

        return {
            "action": self.action,
            "login": self.login,
            "resource": self.resource,
            "parameters": self.parameters,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "success": self.success,
            "error": self.error,
            "result": result,
        }


class BaseWorkflow(ABC):
    """
    Abstract base class for compliance workflows.

    Operations are issued sequentially through the connector. Per-entity
    failures are recorded on the workflow and never raised; failures of
    mandatory upstream reads propagate as ConnectorError.
    """

    mode: ActionMode = ActionMode.NOTIFY

    def __init__(self, connector: BaseConnector, policy: CompliancePolicy,
                 audit_logger: Optional[AuditLogger] = None,
                 now: Callable[[], datetime] = utcnow):
        """
        Initialize the workflow.

        Args:
            connector: Platform connector bound to the organization and repository
            policy: Compliance policy
            audit_logger: Where to record actions, None disables the audit trail
            now: Clock returning timezone-aware datetimes
        """
        self.connector = connector
        self.policy = policy
        self.audit_logger = audit_logger
        self.now = now
        self.run_id = str(uuid.uuid4())
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.steps: List[WorkflowStep] = []
        self.errors: List[str] = []

        logger.info(f"Initialized {self.__class__.__name__} run {self.run_id}")

    @abstractmethod
    def execute(self) -> RunResult:
        """
        Execute the workflow.

        Returns:
            RunResult with execution details
        """
        pass

    def render(self, template: str, login: str) -> str:
        """Render a policy template for a user."""
        return render_template(template, org=self.policy.organization,
                               repo=self.policy.repository, user=login)

    def _execute_step(self, step: WorkflowStep,
                      operation: Callable[[], ConnectorResult]) -> ConnectorResult:
        """
        Execute a single platform write.

        Args:
            step: The step to execute
            operation: Connector call returning a ConnectorResult

        Returns:
            The ConnectorResult (a failed one if the connector raised)
        """
        self.steps.append(step)

        try:
            result = operation()
        except ConnectorError as e:
            result = ConnectorResult(False, str(e), error=str(e))

        if result.success:
            step.mark_success(result.data)
            logger.info(f"Step completed: {step.action}({step.resource})")
        else:
            error_msg = f"{step.action} {step.resource} for {step.login}: {result.error or result.message}"
            step.mark_failure(result.error or result.message or "Unknown error")
            self.errors.append(error_msg)
            logger.error(error_msg)

        self._log_audit_event(step)
        return result

    def _record_error(self, error_msg: str):
        self.errors.append(error_msg)
        logger.error(error_msg)

    def _log_audit_event(self, step: WorkflowStep) -> Optional[str]:
        """
        Log an audit event for a step.

        Returns:
            Audit record ID, or None when no audit logger is configured
        """
        if self.audit_logger is None:
            return None

        audit_record = AuditRecord(
            id=str(uuid.uuid4()),
            event_type=self.mode.value,
            login=step.login,
            action=step.action,
            resource=step.resource,
            success=step.success,
            error_message=step.error,
            run_id=self.run_id,
            metadata={"organization": self.policy.organization,
                      "repository": self.policy.repository},
        )

        try:
            return self.audit_logger.log_event(audit_record)
        except OSError as e:
            self._record_error(f"Failed to write audit record for {step.action}: {e}")
            return None

    def _build_result(self, violations: Optional[List[str]] = None) -> RunResult:
        self.completed_at = self.now()
        return RunResult(
            run_id=self.run_id,
            mode=self.mode,
            started_at=self.started_at or self.completed_at,
            completed_at=self.completed_at,
            success=len(self.errors) == 0,
            violations=violations or [],
            actions_taken=[step.to_dict() for step in self.steps],
            errors=self.errors.copy(),
        )
