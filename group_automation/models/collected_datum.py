"""
Model for data captured by group automations (one row per processed match).
Rows are append-only; they double as the audit trail and the input of aggregate rules.
"""
from sqlalchemy import Column, Integer, String, JSON, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from group_automation.db.base import Base


def build_once_key(rule_id: int, participant_jid: str) -> str:
    """Key guarding the one-submission-per-participant policy at the storage level."""
    return f"{rule_id}:{participant_jid}"


class CollectedDatum(Base):
    __tablename__ = "group_automation_data"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("group_automation_rules.id", ondelete="CASCADE"), nullable=False, index=True)

    group_remote_jid = Column(String, nullable=False)
    participant_jid = Column(String, nullable=False, index=True)
    participant_name = Column(String, nullable=True)  # WhatsApp push name, if any
    message_id = Column(String, nullable=True)

    captured_data = Column(JSON, nullable=False)

    # Only set for reply_only_once collect_data rules; NULLs never conflict
    once_key = Column(String, nullable=True, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    rule = relationship("AutomationRule", back_populates="collected_data")

    def __repr__(self):
        return f"<CollectedDatum(id={self.id}, rule_id={self.rule_id}, participant={self.participant_jid})>"
