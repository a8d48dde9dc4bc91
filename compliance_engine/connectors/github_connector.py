"""
GitHub Connector for the Compliance Engine.

Provides integration with GitHub for organization membership, the
organization audit log, and the issue tracker of the compliance repository.
Raw API objects are mapped into the engine's models at this boundary.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from github import Auth, Github, GithubException, RateLimitExceededException
from pydantic import ValidationError

from ..models import AuditEntry, IssueEvent, IssueState, Member, TrackingIssue
from .base_connector import BaseConnector, ConnectorError, ConnectorResult, RateLimitError
from .retry import ABUSE, RATE_LIMIT, RateLimitSignal, RetriesExhausted, RetryPolicy

logger = logging.getLogger(__name__)

MEMBERS_QUERY = """query($org: String!, $page: String) {
  organization(login: $org) {
    membersWithRole(first: 100, after: $page) {
      pageInfo {
        endCursor
        hasNextPage
      }
      nodes {
        login
        isSiteAdmin
        organizationVerifiedDomainEmails(login: $org)
      }
    }
  }
}"""

_NEXT_LINK = re.compile(r'<([^>]+)>;\s*rel="next"')


def _graphql_error_types(data: Dict[str, Any]) -> List[str]:
    errors = data.get("errors")
    if not isinstance(errors, list):
        return []
    return [str(error.get("type", "")) for error in errors if isinstance(error, dict)]


def classify_rate_limit(exc: Exception, now: Callable[[], float]) -> Optional[RateLimitSignal]:
    """
    Decide whether a GitHub error is a rate-limit or abuse-detection response.

    REST responses signal limits with a 403 or 429. The GraphQL API answers
    with an ``errors`` list whose entries carry ``type: RATE_LIMITED``, which
    PyGithub raises as a 400.

    Args:
        exc: Exception raised by PyGithub
        now: Current epoch time, used to turn a reset header into a wait

    Returns:
        RateLimitSignal, or None if the error is not rate related
    """
    if not isinstance(exc, GithubException):
        return None

    data = exc.data if isinstance(exc.data, dict) else {}
    graphql_limited = "RATE_LIMITED" in _graphql_error_types(data)
    if exc.status not in (403, 429) and not graphql_limited:
        return None

    messages = [str(data.get("message", ""))]
    messages.extend(str(error.get("message", "")) for error in data.get("errors") or []
                    if isinstance(error, dict))
    message = " ".join(messages).lower()
    headers = {k.lower(): v for k, v in (exc.headers or {}).items()}

    if "secondary rate limit" in message or "abuse" in message:
        kind = ABUSE
    elif (graphql_limited or isinstance(exc, RateLimitExceededException)
          or "rate limit" in message):
        kind = RATE_LIMIT
    else:
        return None

    retry_after = None
    if headers.get("retry-after"):
        retry_after = float(headers["retry-after"])
    elif headers.get("x-ratelimit-remaining") == "0" and headers.get("x-ratelimit-reset"):
        retry_after = float(headers["x-ratelimit-reset"]) - now()

    return RateLimitSignal(kind, retry_after)


def member_from_graphql(node: Dict[str, Any]) -> Member:
    """Map a membersWithRole node into a Member."""
    return Member(
        login=node["login"],
        is_administrator=bool(node.get("isSiteAdmin", False)),
        verified_domain_email_count=len(node["organizationVerifiedDomainEmails"]),
    )


def audit_entry_from_json(entry: Dict[str, Any]) -> AuditEntry:
    """Map an audit log entry into an AuditEntry."""
    if "@timestamp" in entry:
        occurred_at = datetime.fromtimestamp(entry["@timestamp"] / 1000, tz=timezone.utc)
    else:
        occurred_at = entry["created_at"]
        if isinstance(occurred_at, (int, float)):
            occurred_at = datetime.fromtimestamp(occurred_at / 1000, tz=timezone.utc)
    return AuditEntry(acted_on_user_login=entry["user"], occurred_at=occurred_at)


def tracking_issue_from_github(issue: Any) -> TrackingIssue:
    """Map a PyGithub Issue into a TrackingIssue."""
    return TrackingIssue(
        number=issue.number,
        created_at=issue.created_at,
        labels={label.name for label in issue.labels},
        assignees=[
            Member(login=assignee.login, is_administrator=bool(assignee.site_admin))
            for assignee in issue.assignees
        ],
        state=IssueState(issue.state),
        url=issue.html_url,
    )


def issue_event_from_github(event: Any) -> IssueEvent:
    """Map a PyGithub IssueEvent into an IssueEvent."""
    label = getattr(event, "label", None)
    actor = event.actor
    return IssueEvent(
        kind=event.event,
        label_name=label.name if label is not None else None,
        actor_is_administrator=bool(actor is not None and actor.site_admin),
    )


class GitHubConnector(BaseConnector):
    """GitHub connector for the organization and its compliance repository."""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 github: Optional[Github] = None):
        super().__init__(config)

        if not self.org_name:
            raise ValueError("GitHub organization name is required")

        self.retry_policy = retry_policy or RetryPolicy()

        if github is None:
            token = self.config.get('github_token') or self.config.get('token')
            if not token:
                raise ValueError("GitHub token is required")
            # Rate limits are handled by retry_policy, not by PyGithub
            github = Github(auth=Auth.Token(token), per_page=100, retry=None)

        self.github = github
        self._org = None
        self._repo = None

    @property
    def org(self):
        if self._org is None:
            self._org = self._request(f"get organization {self.org_name}",
                                      lambda: self.github.get_organization(self.org_name))
        return self._org

    @property
    def repo(self):
        if self._repo is None:
            if not self.repo_name:
                raise ConnectorError("GitHub repository name is required")
            full_name = f"{self.org_name}/{self.repo_name}"
            self._repo = self._request(f"get repository {full_name}",
                                       lambda: self.github.get_repo(full_name))
        return self._repo

    def _request(self, description: str, func: Callable[[], Any]) -> Any:
        """Run a GitHub call under the retry policy, translating failures to ConnectorError."""
        try:
            return self.retry_policy.call(
                func,
                lambda e: classify_rate_limit(e, self.retry_policy.now),
                description,
            )
        except RetriesExhausted as e:
            raise RateLimitError(str(e), status=getattr(e.cause, "status", None)) from e
        except GithubException as e:
            raise ConnectorError(f"Failed to {description}: {e}", status=e.status) from e
        except (KeyError, TypeError, ValidationError) as e:
            raise ConnectorError(f"Unexpected response while trying to {description}: {e}") from e

    def _write(self, description: str, func: Callable[[], Any]) -> ConnectorResult:
        try:
            data = self._request(description, func)
            return ConnectorResult(True, f"Succeeded: {description}", data)
        except ConnectorError as e:
            error_msg = f"Failed to {description}: {e}"
            logger.error(error_msg)
            return ConnectorResult(False, error_msg, error=str(e))

    def list_members(self) -> List[Member]:
        """Retrieve organization members through the GraphQL API."""
        logger.info(f"Retrieving users for {self.org_name}")

        members: List[Member] = []
        page = None
        has_next_page = True

        while has_next_page:
            variables = {"org": self.org_name, "page": page}

            def fetch():
                _, data = self.github.requester.graphql_query(MEMBERS_QUERY, variables)
                connection = data["data"]["organization"]["membersWithRole"]
                return (
                    [member_from_graphql(node) for node in connection["nodes"]],
                    connection["pageInfo"],
                )

            nodes, page_info = self._request(f"list members of {self.org_name}", fetch)
            members.extend(nodes)
            page = page_info["endCursor"]
            has_next_page = page_info["hasNextPage"]

        return members

    def list_membership_additions(self, since: datetime) -> List[AuditEntry]:
        """Retrieve org.add_member audit log entries since the given time."""
        logger.info(f"Retrieving audit log for {self.org_name}")

        phrase = f"action:org.add_member created:>={since.strftime('%Y-%m-%dT%H:%M:%SZ')}"
        url = f"/orgs/{self.org_name}/audit-log"
        parameters: Optional[Dict[str, Any]] = {"phrase": phrase, "include": "web", "per_page": 100}
        entries: List[AuditEntry] = []

        while url:
            def fetch(url=url, parameters=parameters):
                headers, data = self.github.requester.requestJsonAndCheck(
                    "GET", url, parameters=parameters)
                return headers, [audit_entry_from_json(entry) for entry in data]

            headers, page = self._request(f"read audit log of {self.org_name}", fetch)
            entries.extend(page)

            link = {k.lower(): v for k, v in (headers or {}).items()}.get("link", "")
            match = _NEXT_LINK.search(link)
            url = match.group(1) if match else None
            # The next link already carries the query string
            parameters = None

        return entries

    def list_issues(self, assignee: Optional[str] = None, labels: Optional[List[str]] = None,
                    state: str = "open", sort: str = "created",
                    direction: str = "desc") -> List[TrackingIssue]:
        """List issues of the compliance repository."""
        kwargs: Dict[str, Any] = {"state": state, "sort": sort, "direction": direction}
        if assignee:
            kwargs["assignee"] = assignee
        if labels:
            kwargs["labels"] = list(labels)

        def fetch():
            return [
                tracking_issue_from_github(issue)
                for issue in self.repo.get_issues(**kwargs)
                if issue.pull_request is None
            ]

        return self._request(f"list issues of {self.org_name}/{self.repo_name}", fetch)

    def create_issue(self, title: str, assignees: List[str], body: str,
                     labels: List[str]) -> ConnectorResult:
        """Open a new issue in the compliance repository."""
        return self._write(
            f"create issue '{title}'",
            lambda: tracking_issue_from_github(
                self.repo.create_issue(title=title, body=body, assignees=assignees, labels=labels)
            ),
        )

    def update_issue_state(self, issue_number: int, state: IssueState) -> ConnectorResult:
        """Open or close an issue."""
        return self._write(
            f"set issue #{issue_number} to {state.value}",
            lambda: self.repo.get_issue(issue_number).edit(state=state.value),
        )

    def add_comment(self, issue_number: int, body: str) -> ConnectorResult:
        """Comment on an issue."""
        return self._write(
            f"comment on issue #{issue_number}",
            lambda: self.repo.get_issue(issue_number).create_comment(body).id,
        )

    def list_issue_events(self, issue_number: int) -> List[IssueEvent]:
        """Retrieve the event history of an issue."""
        logger.info(f"Retrieving events for {self.org_name}/{self.repo_name}#{issue_number}")
        return self._request(
            f"list events of issue #{issue_number}",
            lambda: [issue_event_from_github(e) for e in self.repo.get_issue(issue_number).get_events()],
        )

    def remove_org_member(self, username: str) -> ConnectorResult:
        """Remove a user from the organization."""
        logger.info(f"Removing user {username} from {self.org_name}")
        return self._write(
            f"remove {username} from {self.org_name}",
            lambda: self.org.remove_from_membership(self.github.get_user(username)),
        )
