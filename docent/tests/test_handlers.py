"""Tests for Slack and Teams webhook handlers."""

import pytest

from docent.gateway.handlers import SlackHandler, TeamsHandler


def _slack_payload(**event):
    base = {
        "type": "app_mention",
        "user": "U123",
        "text": "<@UBOT> how do I enroll a student?",
        "channel": "C456",
        "ts": "1700000000.000100",
    }
    base.update(event)
    return {"type": "event_callback", "event_id": "Ev01", "event": base}


def _teams_activity(**overrides):
    activity = {
        "type": "message",
        "id": "1700000000001",
        "timestamp": "2026-01-05T10:00:00Z",
        "text": "<at>Docent</at> what is a reporting term?",
        "from": {"id": "29:abc", "aadObjectId": "aad-user-1", "name": "Pat"},
        "conversation": {"id": "19:chan@thread.tacv2"},
        "channelData": {"channel": {"name": "PSSIS Support"}},
        "serviceUrl": "https://smba.trafficmanager.net/amer/",
        "entities": [{"type": "mention", "mentioned": {"id": "28:bot", "name": "Docent"}}],
    }
    activity.update(overrides)
    return activity


class TestSlackHandler:
    @pytest.fixture
    def handler(self):
        return SlackHandler(bot_user_id="UBOT")

    @pytest.mark.asyncio
    async def test_app_mention(self, handler):
        event = await handler.parse_event(_slack_payload())

        assert event.source == "slack"
        assert event.event_type == "app_mention"
        assert event.event_id == "Ev01"
        assert event.user == "U123"
        assert event.thread_id == "1700000000.000100"
        assert event.mentions == ["UBOT"]
        assert handler.should_process(event)

    @pytest.mark.asyncio
    async def test_thread_reply_keeps_thread(self, handler):
        event = await handler.parse_event(_slack_payload(thread_ts="1699999999.000001"))
        assert event.thread_id == "1699999999.000001"

    @pytest.mark.asyncio
    async def test_message_with_mention_accepted(self, handler):
        event = await handler.parse_event(_slack_payload(type="message"))
        assert event.event_type == "message"

    @pytest.mark.asyncio
    async def test_message_without_mention_ignored(self, handler):
        assert await handler.parse_event(_slack_payload(type="message", text="just chatting")) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"subtype": "message_changed"},
        {"channel_type": "im"},
        {"type": "reaction_added"},
    ])
    async def test_ignored_events(self, handler, overrides):
        assert await handler.parse_event(_slack_payload(**overrides)) is None

    @pytest.mark.asyncio
    async def test_bots_skipped(self, handler):
        bot = await handler.parse_event(_slack_payload(bot_id="B1"))
        slackbot = await handler.parse_event(_slack_payload(user="USLACKBOT"))
        own = await handler.parse_event(_slack_payload(user="UBOT"))
        assert not handler.should_process(bot)
        assert not handler.should_process(slackbot)
        assert not handler.should_process(own)

    @pytest.mark.asyncio
    async def test_non_callback_ignored(self, handler):
        assert await handler.parse_event({"type": "app_rate_limited"}) is None

    def test_url_verification(self, handler):
        payload = {"type": "url_verification", "challenge": "abc123"}
        assert handler.is_url_verification(payload)
        assert handler.get_challenge(payload) == "abc123"
        assert handler.get_challenge({"type": "event_callback"}) is None

    @pytest.mark.asyncio
    async def test_query_context(self, handler):
        event = await handler.parse_event(_slack_payload(channel_name="pssis-help"))
        context = event.to_query_context({"extra": 1})
        assert context.platform == "slack"
        assert context.query == "<@UBOT> how do I enroll a student?"
        assert context.thread_id == "1700000000.000100"
        assert context.metadata["channel_name"] == "pssis-help"
        assert context.metadata["event_type"] == "app_mention"
        assert context.metadata["extra"] == 1


class TestTeamsHandler:
    @pytest.fixture
    def handler(self):
        return TeamsHandler()

    @pytest.mark.asyncio
    async def test_message_activity(self, handler):
        event = await handler.parse_event(_teams_activity())

        assert event.source == "teams"
        assert event.user == "aad-user-1"
        assert event.channel == "19:chan@thread.tacv2"
        assert event.channel_name == "PSSIS Support"
        assert event.event_id == "1700000000001"
        assert event.thread_id == "1700000000001"
        assert event.mentions == ["28:bot"]
        assert handler.should_process(event)

    @pytest.mark.asyncio
    async def test_reply_uses_reply_to_id(self, handler):
        event = await handler.parse_event(_teams_activity(replyToId="1699999999999"))
        assert event.thread_id == "1699999999999"

    @pytest.mark.asyncio
    async def test_falls_back_to_from_id(self, handler):
        event = await handler.parse_event(_teams_activity(**{"from": {"id": "29:abc"}}))
        assert event.user == "29:abc"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"type": "conversationUpdate"},
        {"type": "typing"},
        {"text": "   "},
    ])
    async def test_ignored_activities(self, handler, overrides):
        assert await handler.parse_event(_teams_activity(**overrides)) is None

    @pytest.mark.asyncio
    async def test_bot_skipped(self, handler):
        event = await handler.parse_event(_teams_activity(**{"from": {"id": "28:bot", "role": "bot"}}))
        assert not handler.should_process(event)
