"""
Tests for the GitHub connector.

PyGithub objects are replaced with mocks; no network access is needed.
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from github import GithubException, RateLimitExceededException

from compliance_engine.connectors import ConnectorError, RateLimitError, RetryPolicy
from compliance_engine.connectors.github_connector import (
    GitHubConnector,
    audit_entry_from_json,
    classify_rate_limit,
    member_from_graphql,
)
from compliance_engine.connectors.retry import ABUSE, RATE_LIMIT
from compliance_engine.models import IssueState

CREATED = datetime(2026, 8, 1, 9, 30, tzinfo=timezone.utc)


def make_label(name):
    label = Mock()
    label.name = name
    return label


def make_user(login, site_admin=False):
    return Mock(login=login, site_admin=site_admin)


def make_gh_issue(number, login, labels=("compliance-unverified-email",), pull_request=None):
    return Mock(
        number=number,
        created_at=CREATED,
        labels=[make_label(name) for name in labels],
        assignees=[make_user(login)],
        state="open",
        html_url=f"https://github.com/acme/compliance/issues/{number}",
        pull_request=pull_request,
    )


def members_page(nodes, cursor, has_next):
    return {}, {"data": {"organization": {"membersWithRole": {
        "pageInfo": {"endCursor": cursor, "hasNextPage": has_next},
        "nodes": nodes,
    }}}}


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def github():
    return Mock()


@pytest.fixture
def repo(github):
    repo = Mock()
    github.get_repo.return_value = repo
    return repo


@pytest.fixture
def connector(github, sleep):
    policy = RetryPolicy(sleep=sleep, jitter=lambda: 0.0, now=lambda: 1000.0)
    return GitHubConnector({"organization": "acme", "repository": "compliance"},
                           retry_policy=policy, github=github)


class TestConstruction:

    def test_organization_is_required(self, github):
        with pytest.raises(ValueError, match="organization"):
            GitHubConnector({"repository": "compliance"}, github=github)

    def test_token_is_required_without_client(self):
        with pytest.raises(ValueError, match="token"):
            GitHubConnector({"organization": "acme"})

    def test_repository_is_required_for_issue_operations(self, github):
        connector = GitHubConnector({"organization": "acme"}, github=github)

        with pytest.raises(ConnectorError, match="repository"):
            connector.list_issues()


class TestReads:

    def test_list_members_follows_cursor(self, connector, github):
        github.requester.graphql_query.side_effect = [
            members_page([{"login": "alice", "isSiteAdmin": False,
                           "organizationVerifiedDomainEmails": []}], "c1", True),
            members_page([{"login": "root", "isSiteAdmin": True,
                           "organizationVerifiedDomainEmails": ["root@acme.com"]}], "c2", False),
        ]

        members = connector.list_members()

        assert [(m.login, m.is_administrator, m.verified_domain_email_count) for m in members] == [
            ("alice", False, 0),
            ("root", True, 1),
        ]
        variables = [c.args[1] for c in github.requester.graphql_query.call_args_list]
        assert variables == [{"org": "acme", "page": None}, {"org": "acme", "page": "c1"}]

    def test_list_members_fails_fast_on_missing_fields(self, connector, github):
        github.requester.graphql_query.return_value = members_page([{"login": "alice"}], None, False)

        with pytest.raises(ConnectorError):
            connector.list_members()

    def test_list_membership_additions_follows_next_link(self, connector, github):
        next_url = "https://api.github.com/organizations/1/audit-log?after=abc"
        github.requester.requestJsonAndCheck.side_effect = [
            ({"Link": f'<{next_url}>; rel="next"'}, [{"user": "bob", "@timestamp": 1790000000000}]),
            ({}, [{"user": "eve", "created_at": 1790000001000}]),
        ]
        since = datetime(2026, 9, 19, tzinfo=timezone.utc)

        entries = connector.list_membership_additions(since)

        assert [e.acted_on_user_login for e in entries] == ["bob", "eve"]
        first, second = github.requester.requestJsonAndCheck.call_args_list
        assert first.args == ("GET", "/orgs/acme/audit-log")
        assert first.kwargs["parameters"]["phrase"] == "action:org.add_member created:>=2026-09-19T00:00:00Z"
        assert first.kwargs["parameters"]["include"] == "web"
        assert second.args == ("GET", next_url)
        assert second.kwargs["parameters"] is None

    def test_audit_phrase_drops_sub_second_precision(self, connector, github):
        github.requester.requestJsonAndCheck.return_value = ({}, [])

        connector.list_membership_additions(datetime(2026, 9, 19, 8, 5, 3, 123456, tzinfo=timezone.utc))

        phrase = github.requester.requestJsonAndCheck.call_args.kwargs["parameters"]["phrase"]
        assert phrase == "action:org.add_member created:>=2026-09-19T08:05:03Z"

    def test_audit_log_failure_raises(self, connector, github):
        github.requester.requestJsonAndCheck.side_effect = GithubException(404, {"message": "Not Found"})

        with pytest.raises(ConnectorError) as excinfo:
            connector.list_membership_additions(datetime(2026, 9, 19, tzinfo=timezone.utc))

        assert excinfo.value.status == 404

    def test_list_issues_maps_and_skips_pull_requests(self, connector, repo):
        repo.get_issues.return_value = [
            make_gh_issue(7, "carol", labels=("compliance-unverified-email", "bot-account")),
            make_gh_issue(8, "dave", pull_request=Mock()),
        ]

        issues = connector.list_issues(assignee="carol", labels=["compliance-unverified-email"], state="all")

        assert len(issues) == 1
        issue = issues[0]
        assert issue.number == 7
        assert issue.created_at == CREATED
        assert issue.labels == {"compliance-unverified-email", "bot-account"}
        assert [a.login for a in issue.assignees] == ["carol"]
        assert issue.state == IssueState.OPEN
        repo.get_issues.assert_called_once_with(
            state="all", sort="created", direction="desc",
            assignee="carol", labels=["compliance-unverified-email"],
        )

    def test_list_issues_omits_unset_filters(self, connector, repo):
        repo.get_issues.return_value = []

        connector.list_issues()

        repo.get_issues.assert_called_once_with(state="open", sort="created", direction="desc")

    def test_list_issue_events(self, connector, repo):
        labeled = Mock(event="labeled", label=make_label("request-granted"), actor=make_user("root", True))
        ghost = Mock(event="assigned", label=None, actor=None)
        repo.get_issue.return_value.get_events.return_value = [labeled, ghost]

        events = connector.list_issue_events(7)

        assert [(e.kind, e.label_name, e.actor_is_administrator) for e in events] == [
            ("labeled", "request-granted", True),
            ("assigned", None, False),
        ]
        repo.get_issue.assert_called_with(7)


class TestWrites:

    def test_create_issue(self, connector, repo):
        repo.create_issue.return_value = make_gh_issue(9, "alice")

        result = connector.create_issue("title", ["alice"], "body", ["compliance-unverified-email"])

        assert result.success is True
        assert result.data.number == 9
        repo.create_issue.assert_called_once_with(
            title="title", body="body", assignees=["alice"], labels=["compliance-unverified-email"])

    def test_create_issue_failure_is_a_result(self, connector, repo):
        repo.create_issue.side_effect = GithubException(422, {"message": "Validation Failed"})

        result = connector.create_issue("title", ["alice"], "body", [])

        assert result.success is False
        assert "Validation Failed" in result.error

    def test_update_issue_state(self, connector, repo):
        assert connector.update_issue_state(7, IssueState.CLOSED).success
        repo.get_issue.return_value.edit.assert_called_once_with(state="closed")

    def test_add_comment(self, connector, repo):
        assert connector.add_comment(7, "hello").success
        repo.get_issue.return_value.create_comment.assert_called_once_with("hello")

    def test_remove_org_member(self, connector, github):
        result = connector.remove_org_member("dave")

        assert result.success is True
        github.get_user.assert_called_once_with("dave")
        github.get_organization.return_value.remove_from_membership.assert_called_once_with(
            github.get_user.return_value)


class TestRateLimits:

    def test_rate_limited_read_is_retried(self, connector, repo, sleep):
        limited = RateLimitExceededException(
            403, {"message": "API rate limit exceeded"},
            {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1010"})
        repo.get_issues.side_effect = [limited, []]

        assert connector.list_issues() == []
        sleep.assert_called_once_with(10.0)

    def test_persistent_rate_limit_surfaces(self, connector, repo, sleep):
        limited = GithubException(403, {"message": "API rate limit exceeded for user"}, {"retry-after": "5"})
        repo.get_issues.side_effect = [limited, limited, []]

        with pytest.raises(RateLimitError):
            connector.list_issues()
        assert sleep.call_count == 1

    def test_rate_limited_write_becomes_failed_result(self, connector, repo):
        abuse = GithubException(403, {"message": "You have exceeded a secondary rate limit"}, {})
        repo.create_issue.side_effect = abuse

        result = connector.create_issue("title", ["alice"], "body", [])

        assert result.success is False
        assert repo.create_issue.call_count == 2

    def test_graphql_rate_limited_member_read_is_retried(self, connector, github, sleep):
        limited = GithubException(400, {"errors": [
            {"type": "RATE_LIMITED", "message": "API rate limit exceeded for user ID 1."}]}, {})
        github.requester.graphql_query.side_effect = [
            limited,
            members_page([{"login": "alice", "isSiteAdmin": False,
                           "organizationVerifiedDomainEmails": []}], None, False),
        ]

        members = connector.list_members()

        assert [m.login for m in members] == ["alice"]
        sleep.assert_called_once_with(60.0)


class TestClassifyRateLimit:

    def test_secondary_rate_limit_is_abuse(self):
        exc = GithubException(403, {"message": "You have exceeded a secondary rate limit."}, {"Retry-After": "60"})
        signal = classify_rate_limit(exc, lambda: 0.0)
        assert signal.kind == ABUSE
        assert signal.retry_after == 60.0

    def test_primary_rate_limit(self):
        exc = RateLimitExceededException(403, {"message": "API rate limit exceeded"}, {})
        signal = classify_rate_limit(exc, lambda: 0.0)
        assert signal.kind == RATE_LIMIT
        assert signal.retry_after is None

    def test_too_many_requests(self):
        exc = GithubException(429, {"message": "rate limit"}, {})
        assert classify_rate_limit(exc, lambda: 0.0).kind == RATE_LIMIT

    def test_graphql_rate_limited_error(self):
        exc = GithubException(400, {"errors": [{"type": "RATE_LIMITED", "message": "API rate limit exceeded"}]}, {})
        assert classify_rate_limit(exc, lambda: 0.0).kind == RATE_LIMIT

    def test_graphql_secondary_rate_limit_is_abuse(self):
        exc = GithubException(400, {"errors": [
            {"type": "RATE_LIMITED", "message": "You have exceeded a secondary rate limit."}]}, {})
        assert classify_rate_limit(exc, lambda: 0.0).kind == ABUSE

    def test_other_graphql_errors_are_not_rate_limits(self):
        exc = GithubException(400, {"errors": [{"type": "NOT_FOUND", "message": "Could not resolve"}]}, {})
        assert classify_rate_limit(exc, lambda: 0.0) is None

    @pytest.mark.parametrize("exc", [
        GithubException(404, {"message": "Not Found"}, {}),
        GithubException(403, {"message": "Resource not accessible by integration"}, {}),
        ValueError("boom"),
    ])
    def test_other_errors_are_not_rate_limits(self, exc):
        assert classify_rate_limit(exc, lambda: 0.0) is None


def test_member_from_graphql_requires_email_list():
    with pytest.raises(KeyError):
        member_from_graphql({"login": "alice"})


def test_audit_entry_from_json_requires_user():
    with pytest.raises(KeyError):
        audit_entry_from_json({"@timestamp": 1790000000000})
