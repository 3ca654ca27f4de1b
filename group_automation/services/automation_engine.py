from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from group_automation.models.automation_rule import AutomationRule
from group_automation.schemas.automation import MatchResult, MessageContext
from group_automation.services.actions import execute_action
from group_automation.services.capture import extract_captured_data
from group_automation.services.rule_selector import select_candidates
from group_automation.utils.dates import to_naive_utc

logger = logging.getLogger(__name__)


class GroupAutomationEngine:
    """
    Matches inbound WhatsApp group messages against a company's automation rules.
    Holds no state between messages; every call re-reads rules and collected data.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_candidate_rules(self, context: MessageContext, now: datetime) -> List[AutomationRule]:
        return select_candidates(
            self.db,
            context.company_id,
            context.group_remote_jid,
            context.group_name,
            now,
        )

    def match_and_execute(self, rule: AutomationRule, context: MessageContext) -> MatchResult:
        """
        Run one candidate rule. A rule whose pattern does not match (or is invalid)
        returns an unmatched result so the next candidate gets a chance.
        """
        captured_data = extract_captured_data(context.content, rule.capture_pattern, rule.action_config)
        if captured_data is None:
            return MatchResult(matched=False)

        logger.info(f"✅ Message {context.message_id} matched rule {rule.id} (\"{rule.name}\")")
        result = execute_action(self.db, rule, context, captured_data)

        return MatchResult(
            matched=True,
            rule=rule,
            captured_data=captured_data,
            response=result.response,
            skip_ai=bool(rule.skip_ai_after),
        )

    def process(self, context: MessageContext, now: Optional[datetime] = None) -> MatchResult:
        now = to_naive_utc(now) if now is not None else datetime.utcnow()

        candidates = self.get_candidate_rules(context, now)
        if not candidates:
            return MatchResult(matched=False)

        # First matching rule wins; lower-priority rules never see the message
        for rule in candidates:
            result = self.match_and_execute(rule, context)
            if result.matched:
                return result

        return MatchResult(matched=False)

    def process_message(
        self,
        company_id: str,
        group_remote_jid: str,
        group_name: Optional[str],
        participant_jid: str,
        participant_name: Optional[str],
        content: str,
        message_id: Optional[str],
        instance_key: Optional[str],
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """
        Process one inbound group message.
        The caller is responsible for sending `response` and for gating its AI
        responder on `skip_ai`.
        """
        context = MessageContext(
            company_id=company_id,
            group_remote_jid=group_remote_jid,
            group_name=group_name,
            participant_jid=participant_jid,
            participant_name=participant_name,
            content=content or "",
            message_id=message_id,
            instance_key=instance_key,
        )
        return self.process(context, now=now)
