#!/usr/bin/env python3
"""
Run one group message through the automation engine against the configured database.

Useful to check a rule from the dashboard without sending anything on WhatsApp:
  python scripts/simulate_group_message.py --company acme --group 120363025@g.us \
      --group-name "Bolão" --participant 5511999@c.us --name Ana "my picks: 4 8 15 16 23 42"

Writes happen for real (collect/aggregate rows, webhooks).

Requires: DATABASE_URL in environment (.env or export).
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from pathlib import Path

# Run from project root; ensure group_automation is importable
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from group_automation.core.config import configure_logging
from group_automation.db.session import SessionLocal
from group_automation.services.automation_engine import GroupAutomationEngine


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Simulate an inbound WhatsApp group message.")
    parser.add_argument("content", help="Message text")
    parser.add_argument("--company", required=True, help="Company id owning the rules")
    parser.add_argument("--group", required=True, help="Group remote JID (e.g. 120363025@g.us)")
    parser.add_argument("--group-name", default=None, help="Group display name")
    parser.add_argument("--participant", required=True, help="Participant JID")
    parser.add_argument("--name", default=None, help="Participant push name")
    parser.add_argument("--message-id", default=None, help="Message id (random if omitted)")
    parser.add_argument("--instance", default="simulator", help="Instance key")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging()

    db = SessionLocal()
    try:
        engine = GroupAutomationEngine(db)
        result = engine.process_message(
            company_id=args.company,
            group_remote_jid=args.group,
            group_name=args.group_name,
            participant_jid=args.participant,
            participant_name=args.name,
            content=args.content,
            message_id=args.message_id or f"sim-{uuid.uuid4().hex[:12]}",
            instance_key=args.instance,
        )
        print(json.dumps(result.summary(), ensure_ascii=False, indent=2, default=str))
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
