"""
Compliance Policy for the Compliance Engine.

This module reads the compliance policy configuration file and exposes the
thresholds, labels and message templates the workflows act on.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_POLICY_FILE = Path(__file__).parent / "compliance_policy.yaml"


class CompliancePolicy(BaseModel):
    """Thresholds, labels and templates of the verified-email compliance policy."""
    organization: str = Field("", description="Target organization")
    repository: str = Field("", description="Repository holding the tracking issues")
    lookback_days: int = Field(30, ge=0, description="Grace period for recently added members")
    stale_after_days: int = Field(60, ge=0, description="Age after which a tracking issue is superseded")
    close_stale_issue: bool = Field(False, description="Close a stale issue before opening its replacement")
    message: str = Field(..., description="Issue body template ($org, $repo, $user)")
    issue_title: str = "Compliance: Unverified Email Address -- $user"
    marker_label: str = "compliance-unverified-email"
    exemption_request_label: str = "request-granted"
    exemption_grant_label: str = "request-granted"
    bot_exemption_label: str = "bot-account"
    bot_login_pattern: str = "-bot"
    exemption_comment: str = "An exemption has been granted."
    removal_comment: str = "$user has been removed from the $org organization."

    @field_validator('bot_login_pattern')
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """The bot pattern must be a valid regular expression."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid bot login pattern: {e}") from e
        return v

    @field_validator('message', 'issue_title')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Template must not be blank')
        return v.strip()

    def require_target(self, needs_repository: bool = True):
        """Raise ValueError unless organization (and repository) are set."""
        if not self.organization:
            raise ValueError("An organization is required")
        if needs_repository and not self.repository:
            raise ValueError("A repository is required")


def load_policy(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> CompliancePolicy:
    """
    Load the compliance policy.

    Args:
        path: YAML policy file. Defaults to the packaged compliance_policy.yaml
        overrides: Values that take precedence over the file (None values are ignored)

    Returns:
        Validated CompliancePolicy
    """
    policy_file = Path(path) if path else DEFAULT_POLICY_FILE

    data: Dict[str, Any] = {}
    if policy_file.exists():
        with open(policy_file, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded compliance policy from {policy_file}")
    elif path:
        raise FileNotFoundError(f"Policy file not found: {policy_file}")
    else:
        logger.warning(f"Default policy file not found: {policy_file}")

    if not isinstance(data, dict):
        raise ValueError(f"Policy file {policy_file} must contain a mapping")

    data.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return CompliancePolicy(**data)
