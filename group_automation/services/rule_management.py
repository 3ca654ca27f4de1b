"""
Rule management
Create/read/update/delete for group automation rules, plus read access to the
data they collected. Ownership is always checked against company_id.
"""
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from group_automation.models.automation_rule import AutomationRule, ActionType
from group_automation.models.collected_datum import CollectedDatum
from group_automation.schemas.automation import (
    AutomationRuleCreate,
    AutomationRuleResponse,
    AutomationRuleUpdate,
    validate_action_config,
)
from group_automation.services.capture import DATA_TYPE_PATTERNS

logger = logging.getLogger(__name__)


def _default_capture_pattern(capture_pattern: Optional[str], action_config: dict) -> Optional[str]:
    """Fall back to the preset pattern of the configured data type."""
    if capture_pattern:
        return capture_pattern
    data_type = (action_config or {}).get("data_type")
    if data_type:
        return DATA_TYPE_PATTERNS.get(data_type)
    return None


def get_rule(db: Session, rule_id: int, company_id: str) -> Optional[AutomationRule]:
    return db.query(AutomationRule).filter(
        AutomationRule.id == rule_id,
        AutomationRule.company_id == company_id
    ).first()


def create_rule(db: Session, company_id: str, rule_data: AutomationRuleCreate) -> AutomationRule:
    rule = AutomationRule(
        company_id=company_id,
        name=rule_data.name,
        description=rule_data.description,
        group_remote_jid=rule_data.group_remote_jid or None,
        group_name_match=rule_data.group_name_match or None,
        capture_pattern=_default_capture_pattern(rule_data.capture_pattern, rule_data.action_config),
        action_type=rule_data.action_type.value,
        action_config=rule_data.action_config,
        starts_at=rule_data.starts_at,
        expires_at=rule_data.expires_at,
        priority=rule_data.priority,
        should_reply=rule_data.should_reply,
        reply_only_once=rule_data.reply_only_once,
        skip_ai_after=rule_data.skip_ai_after,
        is_active=rule_data.is_active,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)

    logger.info(f"✅ Created group automation {rule.id} (\"{rule.name}\") for company {company_id}")
    return rule


def update_rule(
    db: Session,
    rule_id: int,
    company_id: str,
    rule_update: AutomationRuleUpdate,
) -> Optional[AutomationRule]:
    """
    Partial update: only fields present in the request are changed, so an
    explicit null clears a field (e.g. expires_at) while an omitted one is kept.
    Raises ValueError when the result would be an invalid rule.
    """
    rule = get_rule(db, rule_id, company_id)
    if not rule:
        return None

    changes = rule_update.model_dump(exclude_unset=True)

    action_type = changes.get("action_type") or rule.action_type
    if "action_config" in changes or "action_type" in changes:
        config = changes.get("action_config")
        if config is None:
            config = rule.action_config
        changes["action_config"] = validate_action_config(ActionType(action_type), config)
    if "action_type" in changes:
        changes["action_type"] = ActionType(action_type).value

    group_remote_jid = changes.get("group_remote_jid", rule.group_remote_jid)
    group_name_match = changes.get("group_name_match", rule.group_name_match)
    if not group_remote_jid and not group_name_match:
        raise ValueError("Either group_remote_jid or group_name_match is required")

    if "name" in changes and not changes["name"]:
        raise ValueError("Name is required")

    starts_at = changes.get("starts_at", rule.starts_at)
    expires_at = changes.get("expires_at", rule.expires_at)
    if starts_at and expires_at and expires_at <= starts_at:
        raise ValueError("expires_at must be after starts_at")

    # A new data type with no pattern picks up that type's preset
    if "action_config" in changes:
        old_data_type = (rule.action_config or {}).get("data_type")
        new_data_type = changes["action_config"].get("data_type")
        capture_pattern = changes.get("capture_pattern", rule.capture_pattern)
        if new_data_type != old_data_type and not capture_pattern:
            changes["capture_pattern"] = _default_capture_pattern(None, changes["action_config"])

    for field, value in changes.items():
        setattr(rule, field, value)

    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, rule_id: int, company_id: str) -> bool:
    rule = get_rule(db, rule_id, company_id)
    if not rule:
        return False
    db.delete(rule)
    db.commit()
    logger.info(f"🗑️ Deleted group automation {rule_id} for company {company_id}")
    return True


def toggle_rule(db: Session, rule_id: int, company_id: str) -> Optional[AutomationRule]:
    rule = get_rule(db, rule_id, company_id)
    if not rule:
        return None
    rule.is_active = not rule.is_active
    db.commit()
    db.refresh(rule)
    return rule


def list_rules(db: Session, company_id: str) -> List[AutomationRuleResponse]:
    """All rules of a company: active first, then by priority, newest first; with collected counts."""
    rules = db.query(AutomationRule).filter(
        AutomationRule.company_id == company_id
    ).order_by(
        AutomationRule.is_active.desc(),
        AutomationRule.priority.desc(),
        AutomationRule.created_at.desc(),
        AutomationRule.id.desc(),
    ).all()

    rule_ids = [r.id for r in rules]
    counts: dict[int, int] = {}
    if rule_ids:
        for rule_id, count in db.query(CollectedDatum.rule_id, func.count(CollectedDatum.id)).filter(
            CollectedDatum.rule_id.in_(rule_ids)
        ).group_by(CollectedDatum.rule_id):
            counts[rule_id] = count

    result: List[AutomationRuleResponse] = []
    for r in rules:
        response = AutomationRuleResponse.model_validate(r)
        response.collected_count = counts.get(r.id, 0)
        result.append(response)
    return result


def get_collected_data(
    db: Session,
    rule_id: int,
    company_id: str,
    limit: Optional[int] = None,
) -> List[CollectedDatum]:
    """Data collected by a rule, newest first. Empty when the rule is not the company's."""
    if not get_rule(db, rule_id, company_id):
        return []

    query = db.query(CollectedDatum).filter(
        CollectedDatum.rule_id == rule_id
    ).order_by(CollectedDatum.created_at.desc(), CollectedDatum.id.desc())

    if limit:
        query = query.limit(limit)
    return query.all()
