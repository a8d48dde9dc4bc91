"""
Base Connector Classes for the Compliance Engine.

This module provides the platform connector interface consumed by the
workflows, together with an in-memory mock backend used for dry runs
and testing.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from ..models import AuditEntry, IssueEvent, IssueState, Member, TrackingIssue, utcnow

logger = logging.getLogger(__name__)


class ConnectorError(Exception):
    """A platform read or write failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RateLimitError(ConnectorError):
    """The platform kept rate limiting a request after all retries."""


class ConnectorResult:
    """Result of a connector write operation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None,
                 error: Optional[str] = None):
        self.success = success
        self.message = message
        self.data = data
        self.error = error

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"


class BaseConnector(ABC):
    """
    Abstract base class for platform connectors.

    A connector is bound to one organization and one tracking repository.
    Read operations raise ConnectorError on failure; write operations
    return a ConnectorResult.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the connector.

        Args:
            config: Configuration dictionary with credentials, organization and repository
        """
        self.config = config or {}
        self.org_name = self.config.get('organization') or self.config.get('org') or ''
        self.repo_name = self.config.get('repository') or self.config.get('repo') or ''

        logger.info(f"Initialized {self.__class__.__name__} for {self.org_name}/{self.repo_name}")

    @abstractmethod
    def list_members(self) -> List[Member]:
        """
        List every organization member with their verified domain email count.

        Returns:
            Members in the order the platform returns them
        """
        pass

    @abstractmethod
    def list_membership_additions(self, since: datetime) -> List[AuditEntry]:
        """
        List membership-addition audit entries that occurred at or after since.

        Args:
            since: Start of the lookback window

        Returns:
            Audit entries for added members
        """
        pass

    @abstractmethod
    def list_issues(self, assignee: Optional[str] = None, labels: Optional[List[str]] = None,
                    state: str = "open", sort: str = "created",
                    direction: str = "desc") -> List[TrackingIssue]:
        """
        List issues of the tracking repository.

        Args:
            assignee: Only issues assigned to this login
            labels: Only issues carrying all of these labels
            state: "open", "closed" or "all"
            sort: Sort field, "created" or "updated"
            direction: "asc" or "desc"

        Returns:
            Matching issues, pull requests excluded
        """
        pass

    @abstractmethod
    def create_issue(self, title: str, assignees: List[str], body: str,
                     labels: List[str]) -> ConnectorResult:
        """
        Open a new issue. On success the result data is the TrackingIssue.
        """
        pass

    @abstractmethod
    def update_issue_state(self, issue_number: int, state: IssueState) -> ConnectorResult:
        """Open or close an issue."""
        pass

    @abstractmethod
    def add_comment(self, issue_number: int, body: str) -> ConnectorResult:
        """Post a comment on an issue."""
        pass

    @abstractmethod
    def list_issue_events(self, issue_number: int) -> List[IssueEvent]:
        """List the event history of an issue, oldest first."""
        pass

    @abstractmethod
    def remove_org_member(self, username: str) -> ConnectorResult:
        """Remove a user from the organization."""
        pass


class MockConnector(BaseConnector):
    """
    In-memory connector.

    Keeps members, audit entries, issues, events and comments in memory so the
    workflows can be exercised without real API access. Failures can be
    simulated per operation with fail_on, e.g. {"remove_org_member": {"dave"}}.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 members: Optional[Iterable[Member]] = None,
                 audit_entries: Optional[Iterable[AuditEntry]] = None,
                 issues: Optional[Iterable[TrackingIssue]] = None,
                 events: Optional[Dict[int, List[IssueEvent]]] = None,
                 fail_on: Optional[Dict[str, Set[Any]]] = None,
                 now=utcnow):
        super().__init__(config or {"organization": "mock-org", "repository": "mock-repo"})

        self.members: Dict[str, Member] = {m.login: m for m in (members or [])}
        self.audit_entries: List[AuditEntry] = list(audit_entries or [])
        self.issues: Dict[int, TrackingIssue] = {i.number: i for i in (issues or [])}
        self.events: Dict[int, List[IssueEvent]] = {k: list(v) for k, v in (events or {}).items()}
        self.comments: Dict[int, List[str]] = {}
        self.issue_content: Dict[int, Dict[str, str]] = {}
        self.removed_members: List[str] = []
        self.calls: List[str] = []
        self.fail_on = fail_on or {}
        self.now = now

    def _maybe_fail(self, operation: str, key: Any):
        if key in self.fail_on.get(operation, set()) or "*" in self.fail_on.get(operation, set()):
            raise ConnectorError(f"Simulated failure in {operation}({key})")

    def _next_issue_number(self) -> int:
        return max(self.issues, default=0) + 1

    def list_members(self) -> List[Member]:
        """List in-memory members."""
        self.calls.append("list_members")
        self._maybe_fail("list_members", self.org_name)
        return [m for m in self.members.values() if m.login not in self.removed_members]

    def list_membership_additions(self, since: datetime) -> List[AuditEntry]:
        """List in-memory audit entries at or after since."""
        self.calls.append("list_membership_additions")
        self._maybe_fail("list_membership_additions", self.org_name)
        return [e for e in self.audit_entries if e.occurred_at >= since]

    def list_issues(self, assignee: Optional[str] = None, labels: Optional[List[str]] = None,
                    state: str = "open", sort: str = "created",
                    direction: str = "desc") -> List[TrackingIssue]:
        """Filter and sort in-memory issues."""
        self.calls.append(f"list_issues:{assignee or '*'}")
        self._maybe_fail("list_issues", assignee or "*")

        result = []
        for issue in self.issues.values():
            if state != "all" and issue.state.value != state:
                continue
            if assignee and assignee not in [a.login for a in issue.assignees]:
                continue
            if labels and not set(labels).issubset(issue.labels):
                continue
            result.append(issue)

        key = (lambda i: i.created_at) if sort == "created" else (lambda i: i.number)
        return sorted(result, key=key, reverse=(direction == "desc"))

    def create_issue(self, title: str, assignees: List[str], body: str,
                     labels: List[str]) -> ConnectorResult:
        """Mock issue creation."""
        self.calls.append(f"create_issue:{','.join(assignees)}")
        try:
            for login in assignees:
                self._maybe_fail("create_issue", login)
        except ConnectorError as e:
            return ConnectorResult(False, str(e), error=str(e))

        issue = TrackingIssue(
            number=self._next_issue_number(),
            created_at=self.now(),
            labels=set(labels),
            assignees=[self.members.get(login) or Member(login=login) for login in assignees],
            state=IssueState.OPEN,
        )
        self.issues[issue.number] = issue
        self.issue_content[issue.number] = {"title": title, "body": body}

        logger.info(f"Mock created issue #{issue.number}: {title}")
        return ConnectorResult(True, f"Created issue #{issue.number}", issue)

    def update_issue_state(self, issue_number: int, state: IssueState) -> ConnectorResult:
        """Mock issue state change."""
        self.calls.append(f"update_issue_state:{issue_number}:{state.value}")
        if issue_number not in self.issues:
            return ConnectorResult(False, f"Issue #{issue_number} not found",
                                   error="not found")
        try:
            self._maybe_fail("update_issue_state", issue_number)
        except ConnectorError as e:
            return ConnectorResult(False, str(e), error=str(e))

        self.issues[issue_number] = self.issues[issue_number].model_copy(update={"state": state})
        logger.info(f"Mock set issue #{issue_number} to {state.value}")
        return ConnectorResult(True, f"Issue #{issue_number} is {state.value}")

    def add_comment(self, issue_number: int, body: str) -> ConnectorResult:
        """Mock comment."""
        self.calls.append(f"add_comment:{issue_number}")
        try:
            self._maybe_fail("add_comment", issue_number)
        except ConnectorError as e:
            return ConnectorResult(False, str(e), error=str(e))

        self.comments.setdefault(issue_number, []).append(body)
        return ConnectorResult(True, f"Commented on issue #{issue_number}")

    def list_issue_events(self, issue_number: int) -> List[IssueEvent]:
        """List in-memory events of an issue."""
        self.calls.append(f"list_issue_events:{issue_number}")
        self._maybe_fail("list_issue_events", issue_number)
        return list(self.events.get(issue_number, []))

    def remove_org_member(self, username: str) -> ConnectorResult:
        """Mock member removal."""
        self.calls.append(f"remove_org_member:{username}")
        try:
            self._maybe_fail("remove_org_member", username)
        except ConnectorError as e:
            return ConnectorResult(False, str(e), error=str(e))

        self.removed_members.append(username)
        logger.info(f"Mock removed {username} from {self.org_name}")
        return ConnectorResult(True, f"Removed {username} from {self.org_name}")

    @classmethod
    def from_state(cls, state: Dict[str, Any], config: Optional[Dict[str, Any]] = None) -> "MockConnector":
        """
        Build a mock connector from a JSON-style document.

        Args:
            state: Mapping with optional "members", "audit_entries", "issues" and
                   "events" (issue number -> list of events) keys
            config: Connector configuration (organization, repository)

        Returns:
            Populated MockConnector
        """
        return cls(
            config=config,
            members=[Member(**m) for m in state.get("members", [])],
            audit_entries=[AuditEntry(**e) for e in state.get("audit_entries", [])],
            issues=[TrackingIssue(**i) for i in state.get("issues", [])],
            events={int(k): [IssueEvent(**e) for e in v] for k, v in state.get("events", {}).items()},
        )
