"""
Notify Workflow for the Compliance Engine.

Finds members without a verified domain email who are past their grace
window, and opens (or supersedes) a tracking issue for each of them.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from ..connectors import ConnectorError
from ..engine.evaluator import evaluate, filter_violations, recently_added_logins
from ..models import ActionMode, IssueState, Member, RunResult, TrackingIssue, UserOutcome
from .base_workflow import BaseWorkflow, WorkflowStep

logger = logging.getLogger(__name__)


class NotifyWorkflow(BaseWorkflow):
    """
    Workflow for the notify and audit actions.

    In audit mode the violations are only counted and reported; no issue is
    opened.
    """

    def __init__(self, *args, audit_only: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.audit_only = audit_only
        self.mode = ActionMode.AUDIT if audit_only else ActionMode.NOTIFY
        self.members: Dict[str, Member] = {}

    def execute(self) -> RunResult:
        """
        Execute the notify (or audit) workflow.

        Raises:
            ConnectorError: if the audit log or the member list cannot be retrieved

        Returns:
            RunResult with execution details
        """
        self.policy.require_target(needs_repository=not self.audit_only)
        self.started_at = self.now()
        logger.info(f"Starting {self.mode.value} run for {self.policy.organization}")

        violations = sorted(self.find_violations())
        logger.info(f"Found {len(violations)} violations")

        if not self.audit_only:
            for login in violations:
                member = self.members.get(login) or Member(login=login)
                self.reconcile_user_issue(member)

        result = self._build_result(violations)
        logger.info(f"Completed {self.mode.value} run: {len(self.steps)} steps, {len(self.errors)} errors")
        return result

    def find_violations(self) -> List[str]:
        """
        Compute the violating logins.

        Reads the membership-addition audit log for the lookback window and the
        member list. Both reads are mandatory: failures propagate.

        Returns:
            Violating logins in member-list order
        """
        since = self.now() - timedelta(days=self.policy.lookback_days)
        entries = self.connector.list_membership_additions(since)
        members = self.connector.list_members()

        self.members = {member.login: member for member in members}
        return filter_violations(
            recently_added_logins(entries),
            evaluate(members),
            self.policy.bot_login_pattern,
        )

    def reconcile_user_issue(self, member: Member, message: Optional[str] = None) -> UserOutcome:
        """
        Find or create the tracking issue of one violating user.

        Errors are logged and recorded; they never abort the run.

        Args:
            member: The violating member
            message: Issue body, defaults to the policy message rendered for the member

        Returns:
            UserOutcome describing what was done
        """
        login = member.login
        if member.is_administrator:
            logger.info(f"Skipping administrator {login}")
            return UserOutcome.ADMINISTRATOR

        body = message if message is not None else self.render(self.policy.message, login)

        try:
            logger.info(f"Searching for existing issue for {login}")
            issues = self.connector.list_issues(
                assignee=login,
                labels=[self.policy.marker_label],
                state="all",
                sort="created",
                direction="desc",
            )
        except ConnectorError as e:
            self._record_error(f"Failed to look up issues for {login}: {e}")
            return UserOutcome.FAILED

        if not issues:
            return self._open_issue(login, body, UserOutcome.OPENED)

        latest = max(issues, key=lambda issue: issue.created_at)
        if latest.has_label(self.policy.bot_exemption_label):
            logger.info(f"Bot account found, skipping: {login}")
            return UserOutcome.BOT_EXEMPT

        elapsed = self.now() - latest.created_at
        if elapsed <= timedelta(days=self.policy.stale_after_days):
            logger.info(f"Existing issue not yet stale for {login}")
            return UserOutcome.FRESH

        if self.policy.close_stale_issue and latest.state == IssueState.OPEN:
            if not self._close_stale_issue(login, latest):
                return UserOutcome.FAILED

        return self._open_issue(login, body, UserOutcome.SUPERSEDED)

    def _close_stale_issue(self, login: str, issue: TrackingIssue) -> bool:
        logger.info(f"Closing stale issue #{issue.number} for {login}")
        step = WorkflowStep(action="close_issue", login=login, resource=f"#{issue.number}")
        result = self._execute_step(
            step, lambda: self.connector.update_issue_state(issue.number, IssueState.CLOSED))
        return result.success

    def _open_issue(self, login: str, body: str, outcome: UserOutcome) -> UserOutcome:
        logger.info(f"Opening issue for {login}")
        title = self.render(self.policy.issue_title, login)
        step = WorkflowStep(
            action="create_issue",
            login=login,
            resource=f"{self.policy.organization}/{self.policy.repository}",
            parameters={"title": title, "labels": [self.policy.marker_label]},
        )
        result = self._execute_step(
            step,
            lambda: self.connector.create_issue(
                title=title,
                assignees=[login],
                body=body,
                labels=[self.policy.marker_label],
            ),
        )
        return outcome if result.success else UserOutcome.FAILED
