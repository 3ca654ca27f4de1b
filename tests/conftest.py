"""
Shared fixtures: an in-memory SQLite database per test and a rule factory.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from group_automation.db.base import Base
from group_automation.models import AutomationRule, CollectedDatum

COMPANY_ID = "company-1"
GROUP_JID = "120@g.us"


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def make_rule(db):
    """Insert an AutomationRule with sensible defaults; keyword arguments override them."""
    def _make_rule(**overrides):
        values = {
            "company_id": COMPANY_ID,
            "name": "Test rule",
            "group_remote_jid": GROUP_JID,
            "action_type": "auto_reply",
            "action_config": {},
            "priority": 0,
            "should_reply": True,
            "reply_only_once": False,
            "skip_ai_after": True,
            "is_active": True,
        }
        values.update(overrides)
        rule = AutomationRule(**values)
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule

    return _make_rule


@pytest.fixture
def count_data(db):
    def _count(rule_id=None):
        query = db.query(CollectedDatum)
        if rule_id is not None:
            query = query.filter(CollectedDatum.rule_id == rule_id)
        return query.count()

    return _count
