"""
Shared fixtures for the Compliance Engine tests.
"""

from datetime import datetime, timezone

import pytest

from compliance_engine.connectors import MockConnector
from compliance_engine.engine import CompliancePolicy
from compliance_engine.models import IssueState, Member, TrackingIssue

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
MARKER = "compliance-unverified-email"


def make_issue(number, login, age, labels=None, state=IssueState.OPEN, admin=False):
    """Build a tracking issue assigned to login, created age before NOW."""
    return TrackingIssue(
        number=number,
        created_at=NOW - age,
        labels=set(labels if labels is not None else [MARKER]),
        assignees=[Member(login=login, is_administrator=admin)],
        state=state,
    )


@pytest.fixture
def now():
    """Fixed clock."""
    return lambda: NOW


@pytest.fixture
def policy():
    """Policy for the test organization."""
    return CompliancePolicy(
        organization="acme",
        repository="compliance",
        lookback_days=30,
        stale_after_days=60,
        message="Hello @$user, please verify your $org email.",
    )


@pytest.fixture
def connector():
    """Empty in-memory connector for the test organization."""
    return MockConnector({"organization": "acme", "repository": "compliance"}, now=lambda: NOW)
