"""
Tests for the compliance policy loader and template rendering.
"""

import pytest
from pydantic import ValidationError

from compliance_engine.engine import CompliancePolicy, load_policy
from compliance_engine.workflows import render_template


class TestLoadPolicy:

    def test_packaged_defaults(self):
        policy = load_policy()

        assert policy.lookback_days == 30
        assert policy.stale_after_days == 60
        assert policy.close_stale_issue is False
        assert policy.marker_label == "compliance-unverified-email"
        assert policy.bot_exemption_label == "bot-account"
        assert "$user" in policy.message

    def test_overrides_take_precedence_and_none_is_ignored(self):
        policy = load_policy(overrides={"organization": "acme", "lookback_days": 7, "repository": None})

        assert policy.organization == "acme"
        assert policy.lookback_days == 7
        assert policy.repository == ""

    def test_custom_file(self, tmp_path):
        policy_file = tmp_path / "policy.yaml"
        policy_file.write_text("organization: acme\nrepository: compliance\nmessage: Fix it, $user\n"
                               "close_stale_issue: true\n", encoding="utf-8")

        policy = load_policy(policy_file)

        assert policy.close_stale_issue is True
        assert policy.message == "Fix it, $user"
        assert policy.issue_title == "Compliance: Unverified Email Address -- $user"

    def test_missing_custom_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_policy(tmp_path / "absent.yaml")

    def test_file_must_be_a_mapping(self, tmp_path):
        policy_file = tmp_path / "policy.yaml"
        policy_file.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping"):
            load_policy(policy_file)

    def test_negative_days_are_rejected(self):
        with pytest.raises(ValidationError):
            load_policy(overrides={"stale_after_days": -1})

    def test_invalid_bot_pattern_is_rejected(self):
        with pytest.raises(ValidationError):
            CompliancePolicy(message="m", bot_login_pattern="(")


class TestRequireTarget:

    def test_audit_needs_only_organization(self):
        CompliancePolicy(organization="acme", message="m").require_target(needs_repository=False)

    def test_repository_required(self):
        with pytest.raises(ValueError, match="repository"):
            CompliancePolicy(organization="acme", message="m").require_target()

    def test_organization_required(self):
        with pytest.raises(ValueError, match="organization"):
            CompliancePolicy(message="m").require_target(needs_repository=False)


def test_render_template():
    rendered = render_template("$user in $org/$repo ($unknown)", org="acme", repo="compliance", user="alice")
    assert rendered == "alice in acme/compliance ($unknown)"
