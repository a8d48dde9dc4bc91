"""
Core data models for the Compliance Engine.

This module defines the Pydantic models used throughout the system
for organization members, audit log entries, tracking issues, issue events,
and the audit records written for every action the bot takes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class ActionMode(str, Enum):
    """Modes the engine can be invoked in."""
    NOTIFY = "notify"
    AUDIT = "audit"
    RECONCILE = "reconcile"


class IssueState(str, Enum):
    """State of a tracking issue."""
    OPEN = "open"
    CLOSED = "closed"


class UserOutcome(str, Enum):
    """What the issue lifecycle manager did for one violating user."""
    OPENED = "OPENED"
    SUPERSEDED = "SUPERSEDED"
    FRESH = "FRESH"
    BOT_EXEMPT = "BOT_EXEMPT"
    ADMINISTRATOR = "ADMINISTRATOR"
    FAILED = "FAILED"


class IssueOutcome(str, Enum):
    """What the reconciliation engine decided for one tracking issue."""
    EXEMPTED = "EXEMPTED"
    REMOVED = "REMOVED"
    FAILED = "FAILED"


class Member(BaseModel):
    """An organization member (or issue assignee)."""
    login: str = Field(..., min_length=1, description="Platform login")
    is_administrator: bool = Field(False, description="Platform (site) administrator")
    verified_domain_email_count: Optional[int] = Field(
        None, ge=0, description="Number of verified domain emails, None when unknown"
    )


class AuditEntry(BaseModel):
    """A membership-addition event from the organization audit log."""
    acted_on_user_login: str = Field(..., min_length=1)
    occurred_at: datetime

    @field_validator('occurred_at')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are treated as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class TrackingIssue(BaseModel):
    """A compliance tracking issue."""
    number: int
    created_at: datetime
    labels: Set[str] = Field(default_factory=set)
    assignees: List[Member] = Field(default_factory=list)
    state: IssueState = IssueState.OPEN
    url: Optional[str] = None

    @field_validator('created_at')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are treated as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def has_label(self, name: str) -> bool:
        return name in self.labels


class IssueEvent(BaseModel):
    """A single entry of an issue's event history."""
    kind: str
    label_name: Optional[str] = None
    actor_is_administrator: bool = False


class AuditRecord(BaseModel):
    """Audit record for every action taken against the organization."""
    id: str = Field(..., description="Unique audit record ID")
    timestamp: datetime = Field(default_factory=utcnow)
    event_type: str = Field(..., description="Type of event (notify, reconcile)")
    login: str = Field(..., description="User the action concerned")
    action: str = Field(..., description="Specific action taken")
    resource: str = Field(..., description="Resource affected (issue number, organization)")
    success: bool = Field(..., description="Whether the action succeeded")
    error_message: Optional[str] = Field(None, description="Error details if failed")
    run_id: Optional[str] = Field(None, description="ID of the run that triggered this")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RunResult(BaseModel):
    """Result of a complete engine invocation."""
    run_id: str
    mode: ActionMode
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool = True
    violations: List[str] = Field(default_factory=list)
    actions_taken: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

