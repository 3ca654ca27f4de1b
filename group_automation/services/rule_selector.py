"""
Rule Selector
Finds the automation rules that may apply to a message in a given group.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from group_automation.models.automation_rule import AutomationRule
from group_automation.utils.patterns import PATTERN_ERRORS, search_pattern

logger = logging.getLogger(__name__)


def get_active_rules(db: Session, company_id: str, now: datetime) -> List[AutomationRule]:
    """
    Active rules for a company inside their time window, highest priority first.
    starts_at is inclusive, expires_at is exclusive.
    """
    return db.query(AutomationRule).filter(
        AutomationRule.company_id == company_id,
        AutomationRule.is_active == True,
        or_(AutomationRule.starts_at.is_(None), AutomationRule.starts_at <= now),
        or_(AutomationRule.expires_at.is_(None), AutomationRule.expires_at > now),
    ).order_by(
        AutomationRule.priority.desc(),
        AutomationRule.created_at.asc(),
        AutomationRule.id.asc(),
    ).all()


def rule_targets_group(rule: AutomationRule, group_remote_jid: str, group_name: Optional[str]) -> bool:
    """
    Exact JID targeting takes precedence over the name pattern.
    Rules with neither never apply.
    """
    if rule.group_remote_jid:
        return rule.group_remote_jid == group_remote_jid

    if rule.group_name_match and group_name:
        try:
            return search_pattern(rule.group_name_match, group_name) is not None
        except TimeoutError:
            logger.warning("Group name pattern in rule %s timed out, treating as no match", rule.id)
            return False
        except PATTERN_ERRORS:
            # Not a valid regex: treat it as plain text
            logger.warning(
                "Invalid group name pattern in rule %s, falling back to substring match",
                rule.id,
            )
            return rule.group_name_match.lower() in group_name.lower()

    return False


def select_candidates(
    db: Session,
    company_id: str,
    group_remote_jid: str,
    group_name: Optional[str],
    now: datetime,
) -> List[AutomationRule]:
    rules = get_active_rules(db, company_id, now)
    return [rule for rule in rules if rule_targets_group(rule, group_remote_jid, group_name)]
