"""
Reconcile Workflow for the Compliance Engine.

Processes open tracking issues: validates exemptions granted by an
administrator, otherwise removes the non-administrator assignees from the
organization, then closes the issue.
"""

import logging

from ..connectors import ConnectorError
from ..models import ActionMode, IssueOutcome, IssueState, Member, RunResult, TrackingIssue
from .base_workflow import BaseWorkflow, WorkflowStep

logger = logging.getLogger(__name__)


class ReconcileWorkflow(BaseWorkflow):
    """Workflow for the reconcile action."""

    mode = ActionMode.RECONCILE

    def execute(self) -> RunResult:
        """
        Reconcile every open tracking issue, oldest first.

        Raises:
            ConnectorError: if the issue list cannot be retrieved

        Returns:
            RunResult with execution details
        """
        self.policy.require_target()
        self.started_at = self.now()

        logger.info(f"Retrieving issues for {self.policy.organization}/{self.policy.repository}")
        issues = self.connector.list_issues(
            labels=[self.policy.marker_label],
            state="open",
            sort="created",
            direction="asc",
        )

        for issue in issues:
            self.reconcile_issue(issue)

        result = self._build_result()
        logger.info(f"Completed reconcile run over {len(issues)} issues: "
                    f"{len(self.steps)} steps, {len(self.errors)} errors")
        return result

    def reconcile_issue(self, issue: TrackingIssue) -> IssueOutcome:
        """
        Decide exemption or removal for one issue, act on it and close it.

        If the event history needed to validate an exemption cannot be read,
        the issue is left untouched so a later run can retry it.

        Args:
            issue: Open tracking issue

        Returns:
            IssueOutcome describing the decision
        """
        validated = False
        if issue.has_label(self.policy.exemption_request_label):
            try:
                validated = self.validate_exemption(issue.number)
            except ConnectorError as e:
                self._record_error(f"Failed to process issue {issue.url or issue.number}: {e}")
                return IssueOutcome.FAILED

        if validated:
            logger.info(f"Exemption validated on issue #{issue.number}")
            self._comment(issue, self._primary_login(issue), self.policy.exemption_comment)
            outcome = IssueOutcome.EXEMPTED
        else:
            for assignee in issue.assignees:
                if assignee.is_administrator:
                    logger.info(f"Not removing administrator {assignee.login}")
                    continue
                self._remove_assignee(issue, assignee)
            outcome = IssueOutcome.REMOVED

        logger.info(f"Closing issue {issue.number}")
        step = WorkflowStep(action="close_issue", login=self._primary_login(issue),
                            resource=f"#{issue.number}")
        self._execute_step(step, lambda: self.connector.update_issue_state(issue.number, IssueState.CLOSED))
        return outcome

    def validate_exemption(self, issue_number: int) -> bool:
        """
        Replay an issue's events looking for the exemption-grant label added by an administrator.

        Raises:
            ConnectorError: if the events cannot be retrieved
        """
        for event in self.connector.list_issue_events(issue_number):
            if (event.kind == "labeled"
                    and event.label_name == self.policy.exemption_grant_label
                    and event.actor_is_administrator):
                return True
        return False

    def _remove_assignee(self, issue: TrackingIssue, assignee: Member):
        step = WorkflowStep(action="remove_member", login=assignee.login,
                            resource=self.policy.organization,
                            parameters={"issue": issue.number})
        result = self._execute_step(step, lambda: self.connector.remove_org_member(assignee.login))
        if result.success:
            self._comment(issue, assignee.login, self.render(self.policy.removal_comment, assignee.login))

    def _comment(self, issue: TrackingIssue, login: str, body: str):
        step = WorkflowStep(action="add_comment", login=login, resource=f"#{issue.number}")
        self._execute_step(step, lambda: self.connector.add_comment(issue.number, body))

    @staticmethod
    def _primary_login(issue: TrackingIssue) -> str:
        return issue.assignees[0].login if issue.assignees else ""
