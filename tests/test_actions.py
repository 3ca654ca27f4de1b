from unittest.mock import MagicMock, patch

import pytest
import requests

from group_automation.models import CollectedDatum
from group_automation.schemas.automation import MessageContext
from group_automation.services.actions import (
    coerce_number,
    default_collect_reply,
    execute_action,
)

GROUP_JID = "120@g.us"


def _context(participant_jid="5511999@c.us", participant_name="Ana", content="my picks: 4 8 15 16 23 42", message_id="m1"):
    return MessageContext(
        company_id="company-1",
        group_remote_jid=GROUP_JID,
        group_name="Bolão",
        participant_jid=participant_jid,
        participant_name=participant_name,
        content=content,
        message_id=message_id,
        instance_key="inst1",
    )


class TestCollectData:
    def test_stores_capture_and_replies_with_template(self, db, make_rule, count_data):
        rule = make_rule(
            action_type="collect_data",
            action_config={"data_type": "lottery_numbers", "reply_template": "{{participantName}}: {{numbers}}"},
        )
        captured = {"raw": "4 8", "numbers": [4, 8]}

        result = execute_action(db, rule, _context(), captured)

        assert result.response == "Ana: 4 - 8"
        datum = db.query(CollectedDatum).one()
        assert datum.rule_id == rule.id
        assert datum.participant_jid == "5511999@c.us"
        assert datum.participant_name == "Ana"
        assert datum.message_id == "m1"
        assert datum.captured_data == captured
        assert datum.once_key is None

    def test_default_reply_lists_numbers(self, db, make_rule):
        rule = make_rule(action_type="collect_data", action_config={})
        result = execute_action(db, rule, _context(participant_name=None), {"raw": "x", "numbers": [1, 2]})
        assert result.response == "✅ Numbers registered: 1 - 2\n👤 Participant: Anonymous"

    def test_default_reply_without_numbers(self):
        assert default_collect_reply("Ana", {"raw": "hello"}) == "✅ Data registered successfully!"

    def test_no_reply_when_should_reply_is_off(self, db, make_rule, count_data):
        rule = make_rule(action_type="collect_data", should_reply=False, action_config={"reply_template": "ok"})
        result = execute_action(db, rule, _context(), {"raw": "x"})
        assert result.response is None
        assert count_data(rule.id) == 1

    def test_reply_only_once_is_idempotent(self, db, make_rule, count_data):
        rule = make_rule(
            action_type="collect_data",
            reply_only_once=True,
            action_config={"reply_template": "Got it"},
        )

        first = execute_action(db, rule, _context(), {"raw": "1"})
        second = execute_action(db, rule, _context(message_id="m2"), {"raw": "2"})

        assert first.response == "Got it"
        assert second.response is None
        assert count_data(rule.id) == 1
        assert db.query(CollectedDatum).one().once_key == f"{rule.id}:5511999@c.us"

    def test_reply_only_once_is_per_participant(self, db, make_rule, count_data):
        rule = make_rule(action_type="collect_data", reply_only_once=True)
        execute_action(db, rule, _context(participant_jid="a@c.us"), {"raw": "1"})
        result = execute_action(db, rule, _context(participant_jid="b@c.us"), {"raw": "2"})
        assert result.response is not None
        assert count_data(rule.id) == 2

    def test_repeat_submissions_are_kept_without_reply_only_once(self, db, make_rule, count_data):
        rule = make_rule(action_type="collect_data")
        execute_action(db, rule, _context(), {"raw": "1"})
        execute_action(db, rule, _context(), {"raw": "2"})
        assert count_data(rule.id) == 2

    def test_concurrent_duplicate_is_rejected_by_storage(self, db, make_rule, count_data):
        rule = make_rule(action_type="collect_data", reply_only_once=True, action_config={"reply_template": "Got it"})
        execute_action(db, rule, _context(), {"raw": "1"})

        # Simulate a second message that passed the existence check before the first insert landed
        with patch("group_automation.services.actions.has_submitted", return_value=False):
            result = execute_action(db, rule, _context(message_id="m2"), {"raw": "2"})

        assert result.response is None
        assert count_data(rule.id) == 1


class TestAutoReply:
    def test_interpolates_with_participant_and_capture(self, db, make_rule, count_data):
        rule = make_rule(action_config={"reply_template": "Olá {{participantName}}, {{team}}!"})
        result = execute_action(db, rule, _context(), {"raw": "x", "team": "Flamengo"})
        assert result.response == "Olá Ana, Flamengo!"
        assert count_data() == 0

    def test_default_participant_placeholder(self, db, make_rule):
        rule = make_rule(action_config={"reply_template": "Olá {{participantName}}"})
        result = execute_action(db, rule, _context(participant_name=None), {"raw": "x"})
        assert result.response == "Olá Participante"

    def test_no_template_no_reply(self, db, make_rule):
        rule = make_rule(action_config={})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None

    def test_should_reply_off(self, db, make_rule):
        rule = make_rule(should_reply=False, action_config={"reply_template": "hi"})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None


class TestWebhook:
    def _rule(self, make_rule, **config):
        values = {"url": "https://crm.example.com/hook", "success_reply": "Sent, {{participantName}}"}
        values.update(config)
        return make_rule(action_type="webhook", action_config=values)

    @patch("group_automation.services.actions.requests.request")
    def test_posts_payload_and_replies_on_success(self, mock_request, db, make_rule):
        mock_request.return_value = MagicMock(status_code=200)
        rule = self._rule(make_rule, headers={"X-Token": "abc"})

        result = execute_action(db, rule, _context(), {"raw": "hello"})

        assert result.response == "Sent, Ana"
        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://crm.example.com/hook")
        assert kwargs["timeout"] == 10
        assert kwargs["headers"] == {"X-Token": "abc"}
        payload = kwargs["json"]
        assert payload["ruleId"] == rule.id
        assert payload["ruleName"] == rule.name
        assert payload["groupRemoteJid"] == GROUP_JID
        assert payload["participantJid"] == "5511999@c.us"
        assert payload["participantName"] == "Ana"
        assert payload["content"] == "my picks: 4 8 15 16 23 42"
        assert payload["capturedData"] == {"raw": "hello"}
        assert "timestamp" in payload

    @patch("group_automation.services.actions.requests.request")
    def test_uses_configured_method(self, mock_request, db, make_rule):
        mock_request.return_value = MagicMock(status_code=200)
        rule = self._rule(make_rule, method="put")
        execute_action(db, rule, _context(), {"raw": "x"})
        assert mock_request.call_args[0][0] == "PUT"

    @patch("group_automation.services.actions.requests.request")
    def test_no_url_is_a_no_op(self, mock_request, db, make_rule):
        rule = make_rule(action_type="webhook", action_config={"success_reply": "ok"})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None
        mock_request.assert_not_called()

    @pytest.mark.parametrize("error", [
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.Timeout("slow"),
    ])
    @patch("group_automation.services.actions.requests.request")
    def test_network_failures_are_swallowed(self, mock_request, error, db, make_rule):
        mock_request.side_effect = error
        rule = self._rule(make_rule)
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None

    @patch("group_automation.services.actions.requests.request")
    def test_non_2xx_is_a_failure(self, mock_request, db, make_rule):
        response = MagicMock(status_code=500)
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
        mock_request.return_value = response
        rule = self._rule(make_rule)
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None

    @patch("group_automation.services.actions.requests.request")
    def test_success_without_should_reply(self, mock_request, db, make_rule):
        mock_request.return_value = MagicMock(status_code=204)
        rule = make_rule(action_type="webhook", should_reply=False, action_config={"url": "https://x.io", "success_reply": "ok"})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None
        mock_request.assert_called_once()


class TestAggregate:
    def test_count_includes_current_message(self, db, make_rule, count_data):
        rule = make_rule(
            action_type="aggregate",
            action_config={"operation": "count", "reply_template": "Total: {{count}} ({{uniqueParticipants}} people)"},
        )

        first = execute_action(db, rule, _context(participant_jid="a@c.us"), {"raw": "eu vou"})
        second = execute_action(db, rule, _context(participant_jid="a@c.us"), {"raw": "eu vou"})
        third = execute_action(db, rule, _context(participant_jid="b@c.us"), {"raw": "eu vou"})

        assert first.response == "Total: 1 (1 people)"
        assert second.response == "Total: 2 (1 people)"
        assert third.response == "Total: 3 (2 people)"
        assert count_data(rule.id) == 3

    def test_sum_coerces_values(self, db, make_rule):
        rule = make_rule(
            action_type="aggregate",
            action_config={"operation": "sum", "field": "value", "reply_template": "Sum: {{sum}} / last {{value}}"},
        )
        execute_action(db, rule, _context(), {"raw": "a", "value": 10.5})
        execute_action(db, rule, _context(), {"raw": "b", "value": "4.5kg"})
        execute_action(db, rule, _context(), {"raw": "c", "value": "n/a"})
        result = execute_action(db, rule, _context(), {"raw": "d", "value": 5})

        assert result.response == "Sum: 20 / last 5"

    def test_capture_overrides_aggregate_keys(self, db, make_rule):
        rule = make_rule(action_type="aggregate", action_config={"reply_template": "{{count}}"})
        result = execute_action(db, rule, _context(), {"raw": "x", "count": "mine"})
        assert result.response == "mine"

    def test_no_template_no_reply(self, db, make_rule, count_data):
        rule = make_rule(action_type="aggregate", action_config={})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None
        assert count_data(rule.id) == 1


class TestAiProcessAndFallbacks:
    def test_ai_process_never_replies(self, db, make_rule, count_data):
        rule = make_rule(action_type="ai_process", action_config={"prompt": "Summarize the bet"})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None
        assert count_data() == 0

    def test_ai_process_without_prompt(self, db, make_rule):
        rule = make_rule(action_type="ai_process", action_config={})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None

    def test_unknown_action_type_is_a_no_op(self, db, make_rule, count_data):
        rule = make_rule(action_type="send_sms", action_config={"reply_template": "hi"})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None
        assert count_data() == 0

    def test_malformed_stored_config_is_a_no_op(self, db, make_rule):
        rule = make_rule(action_type="aggregate", action_config={"operation": "median"})
        assert execute_action(db, rule, _context(), {"raw": "x"}).response is None


@pytest.mark.parametrize("value, expected", [
    (3, 3.0),
    (2.5, 2.5),
    ("7", 7.0),
    (" 12.5 reais", 12.5),
    ("abc", 0.0),
    (None, 0.0),
    (True, 0.0),
    ([1, 2], 0.0),
])
def test_coerce_number(value, expected):
    assert coerce_number(value) == expected
