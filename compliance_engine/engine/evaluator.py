"""
Compliance Evaluator for the Compliance Engine.

Determines which members lack a verified domain email, and which of those
are past their grace window and therefore violations.
"""

import logging
import re
from typing import Iterable, List, Optional, Union

from ..models import AuditEntry, Member

logger = logging.getLogger(__name__)

DEFAULT_BOT_PATTERN = "-bot"


def evaluate(members: Iterable[Member]) -> List[str]:
    """
    Compute the non-compliant member logins.

    Args:
        members: Organization members with their verified domain email counts

    Returns:
        Logins with zero verified domain emails, in encounter order
    """
    logger.info("Evaluating users without verified domain emails")
    return [member.login for member in members if member.verified_domain_email_count == 0]


def recently_added_logins(entries: Iterable[AuditEntry]) -> List[str]:
    """Logins acted on by membership-addition audit entries."""
    return [entry.acted_on_user_login for entry in entries]


def is_bot_login(login: str, pattern: Union[str, "re.Pattern[str]"] = DEFAULT_BOT_PATTERN) -> bool:
    """Whether a login follows the bot-account naming convention."""
    return re.search(pattern, login) is not None


def filter_violations(recently_added: Iterable[str], non_compliant: Iterable[str],
                      bot_pattern: Optional[str] = DEFAULT_BOT_PATTERN) -> List[str]:
    """
    Determine users who were not added within the lookback window and
    still don't have a verified domain email.

    Args:
        recently_added: Logins added to the organization within the lookback window
        non_compliant: Logins without a verified domain email
        bot_pattern: Regular expression identifying bot accounts, None disables it

    Returns:
        Violating logins, in the order of non_compliant, each at most once
    """
    excepted = set(recently_added)
    compiled = re.compile(bot_pattern) if bot_pattern else None

    violations: List[str] = []
    seen = set()
    for login in non_compliant:
        if login in excepted or login in seen:
            continue
        if compiled is not None and is_bot_login(login, compiled):
            logger.debug(f"Skipping bot account {login}")
            continue
        seen.add(login)
        violations.append(login)

    return violations
