"""
Model for group automation rules: a trigger (targeting + pattern) and the
action to run when an inbound group message matches it.
"""
from sqlalchemy import Column, Integer, String, JSON, Boolean, DateTime, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from group_automation.db.base import Base


class ActionType(str, Enum):
    """What a rule does once a message matches it."""
    COLLECT_DATA = "collect_data"  # Store the capture (optionally once per participant)
    AUTO_REPLY = "auto_reply"  # Reply with a template, no storage
    WEBHOOK = "webhook"  # Forward the capture to an external URL
    AGGREGATE = "aggregate"  # Store, then count/sum over everything stored for the rule
    AI_PROCESS = "ai_process"  # Custom prompt for a future AI step


class DataType(str, Enum):
    """Specialized extraction applied on top of the raw capture."""
    LOTTERY_NUMBERS = "lottery_numbers"
    MONEY = "money"
    PHONE = "phone"
    EMAIL = "email"
    CUSTOM = "custom"


class AggregateOperation(str, Enum):
    COUNT = "count"
    SUM = "sum"


class AutomationRule(Base):
    __tablename__ = "group_automation_rules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # Targeting: exact group JID wins over the display-name regex
    group_remote_jid = Column(String, nullable=True)  # e.g. "120363025@g.us"
    group_name_match = Column(String, nullable=True)  # Regex tested against the group's display name

    capture_pattern = Column(String, nullable=True)  # Regex tested against message content; None matches everything
    action_type = Column(String, nullable=False)  # See ActionType
    action_config = Column(JSON, nullable=False, default=dict)

    # Time window
    starts_at = Column(DateTime, nullable=True)  # Inactive before this instant
    expires_at = Column(DateTime, nullable=True)  # Inactive at/after this instant

    priority = Column(Integer, nullable=False, default=0)  # Higher is evaluated first

    # Policy flags
    should_reply = Column(Boolean, nullable=False, default=True)
    reply_only_once = Column(Boolean, nullable=False, default=False)  # One collect_data submission per participant
    skip_ai_after = Column(Boolean, nullable=False, default=True)  # Tell the caller not to run the AI responder
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    collected_data = relationship(
        "CollectedDatum",
        back_populates="rule",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_group_automation_rules_company_active_priority", "company_id", "is_active", "priority"),
    )

    def __repr__(self):
        return f"<AutomationRule(id={self.id}, name={self.name}, action={self.action_type}, priority={self.priority})>"
