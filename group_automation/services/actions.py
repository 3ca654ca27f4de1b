"""
Action Executors
One function per action type. Each receives the matched rule, its parsed config,
the message context and the captured data, and returns the reply to send (if any).
All side effects of a match (database writes, outbound HTTP) happen here.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import requests
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from group_automation.core.config import DEFAULT_PARTICIPANT_NAME, WEBHOOK_TIMEOUT_SECONDS
from group_automation.models.automation_rule import AutomationRule, ActionType
from group_automation.models.collected_datum import CollectedDatum, build_once_key
from group_automation.schemas.automation import (
    ActionConfig,
    ActionResult,
    AggregateConfig,
    AiProcessConfig,
    AutoReplyConfig,
    CollectDataConfig,
    MessageContext,
    WebhookConfig,
    parse_action_config,
)
from group_automation.services.template import interpolate

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def coerce_number(value: Any) -> float:
    """Best-effort numeric value of a captured field ("12.5kg" -> 12.5); 0 when there is none."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match:
            return float(match.group(1))
    return 0.0


def _display_number(value: float):
    return int(value) if float(value).is_integer() else value


def _template_data(context: MessageContext, captured_data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "participantName": context.participant_name or DEFAULT_PARTICIPANT_NAME,
        **captured_data,
    }


def _new_datum(rule: AutomationRule, context: MessageContext, captured_data: Dict[str, Any], once_key: Optional[str] = None) -> CollectedDatum:
    return CollectedDatum(
        rule_id=rule.id,
        group_remote_jid=context.group_remote_jid,
        participant_jid=context.participant_jid,
        participant_name=context.participant_name,
        message_id=context.message_id,
        captured_data=captured_data,
        once_key=once_key,
    )


def has_submitted(db: Session, rule_id: int, participant_jid: str) -> bool:
    return db.query(CollectedDatum.id).filter(
        CollectedDatum.rule_id == rule_id,
        CollectedDatum.participant_jid == participant_jid,
    ).first() is not None


def default_collect_reply(participant_name: Optional[str], captured_data: Dict[str, Any]) -> str:
    numbers = captured_data.get("numbers")
    if numbers:
        return (
            f"✅ Numbers registered: {' - '.join(str(n) for n in numbers)}\n"
            f"👤 Participant: {participant_name or 'Anonymous'}"
        )
    return "✅ Data registered successfully!"


def execute_collect_data(
    db: Session,
    rule: AutomationRule,
    config: CollectDataConfig,
    context: MessageContext,
    captured_data: Dict[str, Any],
) -> ActionResult:
    """Store the capture; with reply_only_once, later submissions from the same participant are ignored."""
    once_key = None
    if rule.reply_only_once:
        if has_submitted(db, rule.id, context.participant_jid):
            logger.info(f"Participant {context.participant_jid} already submitted for rule {rule.id}")
            return ActionResult()
        once_key = build_once_key(rule.id, context.participant_jid)

    db.add(_new_datum(rule, context, captured_data, once_key=once_key))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if once_key is None:
            raise
        # A concurrent message from the same participant got stored first
        logger.info(f"Participant {context.participant_jid} already submitted for rule {rule.id} (concurrent)")
        return ActionResult()

    logger.info(f"📊 Collected data for rule \"{rule.name}\": {captured_data}")

    if not rule.should_reply:
        return ActionResult()

    if config.reply_template:
        return ActionResult(response=interpolate(config.reply_template, _template_data(context, captured_data)))
    return ActionResult(response=default_collect_reply(context.participant_name, captured_data))


def execute_auto_reply(
    db: Session,
    rule: AutomationRule,
    config: AutoReplyConfig,
    context: MessageContext,
    captured_data: Dict[str, Any],
) -> ActionResult:
    if not rule.should_reply or not config.reply_template:
        return ActionResult()
    return ActionResult(response=interpolate(config.reply_template, _template_data(context, captured_data)))


def build_webhook_payload(rule: AutomationRule, context: MessageContext, captured_data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "ruleId": rule.id,
        "ruleName": rule.name,
        "groupRemoteJid": context.group_remote_jid,
        "participantJid": context.participant_jid,
        "participantName": context.participant_name,
        "content": context.content,
        "capturedData": captured_data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def execute_webhook(
    db: Session,
    rule: AutomationRule,
    config: WebhookConfig,
    context: MessageContext,
    captured_data: Dict[str, Any],
) -> ActionResult:
    """Forward the capture to an external URL. Failures are logged and never abort processing."""
    if not config.url:
        return ActionResult()

    try:
        response = requests.request(
            (config.method or "POST").upper(),
            config.url,
            json=build_webhook_payload(rule, context, captured_data),
            headers=config.headers or {},
            timeout=WEBHOOK_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except requests.exceptions.Timeout:
        logger.error(f"Webhook to {config.url} timed out after {WEBHOOK_TIMEOUT_SECONDS}s (rule {rule.id})")
        return ActionResult()
    except requests.exceptions.RequestException as e:
        logger.error(f"Webhook failed for rule {rule.id}: {str(e)}")
        return ActionResult()

    logger.info(f"📤 Webhook sent to {config.url}")

    if rule.should_reply and config.success_reply:
        return ActionResult(response=interpolate(config.success_reply, _template_data(context, captured_data)))
    return ActionResult()


def compute_aggregate(db: Session, rule_id: int, field: Optional[str]) -> Dict[str, Any]:
    rows = db.query(CollectedDatum.participant_jid, CollectedDatum.captured_data).filter(
        CollectedDatum.rule_id == rule_id
    ).all()

    result: Dict[str, Any] = {
        "count": len(rows),
        "uniqueParticipants": len({participant_jid for participant_jid, _ in rows}),
    }
    if field:
        total = sum(coerce_number((data or {}).get(field)) for _, data in rows)
        result["sum"] = _display_number(total)
    return result


def execute_aggregate(
    db: Session,
    rule: AutomationRule,
    config: AggregateConfig,
    context: MessageContext,
    captured_data: Dict[str, Any],
) -> ActionResult:
    """Store the capture, then recount everything stored for the rule (including it)."""
    db.add(_new_datum(rule, context, captured_data))
    db.commit()

    aggregate = compute_aggregate(db, rule.id, config.field)
    logger.info(f"🧮 Aggregate for rule \"{rule.name}\": {aggregate}")

    if rule.should_reply and config.reply_template:
        return ActionResult(response=interpolate(config.reply_template, {**aggregate, **captured_data}))
    return ActionResult()


def execute_ai_process(
    db: Session,
    rule: AutomationRule,
    config: AiProcessConfig,
    context: MessageContext,
    captured_data: Dict[str, Any],
) -> ActionResult:
    # Only records the request; the caller's AI responder does the actual work
    if not config.prompt:
        return ActionResult()
    logger.info(f"🤖 AI processing requested for rule \"{rule.name}\" (instance {context.instance_key})")
    return ActionResult()


ACTION_EXECUTORS: Dict[ActionType, Callable[..., ActionResult]] = {
    ActionType.COLLECT_DATA: execute_collect_data,
    ActionType.AUTO_REPLY: execute_auto_reply,
    ActionType.WEBHOOK: execute_webhook,
    ActionType.AGGREGATE: execute_aggregate,
    ActionType.AI_PROCESS: execute_ai_process,
}


def execute_action(
    db: Session,
    rule: AutomationRule,
    context: MessageContext,
    captured_data: Dict[str, Any],
) -> ActionResult:
    """Run the executor for the rule's action type. Misconfigured rules are logged and skipped."""
    try:
        action_type = ActionType(rule.action_type)
    except ValueError:
        logger.warning(f"Unknown action type: {rule.action_type} (rule {rule.id})")
        return ActionResult()

    try:
        config: ActionConfig = parse_action_config(action_type, rule.action_config)
    except ValidationError as e:
        logger.warning(f"Invalid action config for rule {rule.id}: {str(e)}")
        return ActionResult()

    return ACTION_EXECUTORS[action_type](db, rule, config, context, captured_data)
