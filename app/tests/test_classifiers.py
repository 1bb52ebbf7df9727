import uuid
import pytest

from app.integrations.slack.classifier import classify_slack_event
from app.integrations.slack.models import SlackRoute
from app.integrations.zendesk.classifier import classify_zendesk_event, is_merge_notice, ZendeskAction


def slack_event(**event):
    return {"type": "event_callback", "api_app_id": "A0001", "event": event}


class TestSlackClassifier:
    """Test routing of Slack events"""

    @pytest.mark.parametrize("subtype", [None, "message_replied", "message_changed", "message_deleted"])
    def test_content_messages_are_queued(self, subtype):
        payload = slack_event(type="message", subtype=subtype, user="U1", channel="C1", ts="1.0")

        assert classify_slack_event(payload, "UBOT", True) == SlackRoute.MESSAGE_QUEUE

    def test_file_share_goes_to_file_queue(self):
        payload = slack_event(type="message", subtype="file_share", user="U1", channel="C1", ts="1.0")

        assert classify_slack_event(payload, "UBOT", True) == SlackRoute.FILE_QUEUE

    def test_bot_messages_are_ignored(self):
        payload = slack_event(type="message", user="UBOT", channel="C1", ts="1.0")

        assert classify_slack_event(payload, "UBOT", True) == SlackRoute.IGNORE

    def test_bot_file_share_is_ignored(self):
        payload = slack_event(type="message", subtype="file_share", user="UBOT", channel="C1", ts="1.0")

        assert classify_slack_event(payload, "UBOT", True) == SlackRoute.IGNORE

    def test_bot_edit_is_ignored(self):
        payload = slack_event(type="message", subtype="message_changed", channel="C1",
                              message={"user": "UBOT", "text": "x"})

        assert classify_slack_event(payload, "UBOT", True) == SlackRoute.IGNORE

    def test_other_subtypes_are_ignored(self):
        payload = slack_event(type="message", subtype="bot_message", channel="C1", ts="1.0")

        assert classify_slack_event(payload, "UBOT", True) == SlackRoute.IGNORE

    def test_inactive_subscription_drops_content(self):
        payload = slack_event(type="message", user="U1", channel="C1", ts="1.0")

        assert classify_slack_event(payload, "UBOT", False) == SlackRoute.IGNORE

    @pytest.mark.parametrize("event_type", ["member_joined_channel", "channel_left", "channel_rename", "channel_id_changed"])
    def test_lifecycle_routed_even_when_inactive(self, event_type):
        payload = slack_event(type=event_type, channel="C1")

        assert classify_slack_event(payload, "UBOT", False) == SlackRoute.LIFECYCLE

    def test_lifecycle_as_message_subtype(self):
        payload = slack_event(type="message", subtype="channel_archive", channel="C1", user="U1")

        assert classify_slack_event(payload, "UBOT", True) == SlackRoute.LIFECYCLE

    def test_uninstall_and_home(self):
        assert classify_slack_event(slack_event(type="app_uninstalled"), "UBOT", False) == SlackRoute.UNINSTALL
        assert classify_slack_event(slack_event(type="app_home_opened", user="U1"), "UBOT", True) == SlackRoute.HOME

    def test_unknown_event_types_are_ignored(self):
        assert classify_slack_event(slack_event(type="reaction_added"), "UBOT", True) == SlackRoute.IGNORE


class TestZendeskClassifier:
    """Test filtering of Zendesk comment webhooks"""

    def payload(self, **overrides):
        data = {
            "ticket_id": 42,
            "external_id": f"zensync-{uuid.uuid4()}",
            "message": "We are looking into it.",
            "is_public": True,
            "current_user_email": "agent@acme.com",
            "current_user_name": "Agent",
            "current_user_external_id": None,
            "current_user_signature": "",
            "last_updated_at": "2026-01-01T10:05:00Z",
            "created_at": "2026-01-01T10:00:00Z",
        }
        data.update(overrides)
        return data

    def test_agent_comment_is_relayed(self):
        result = classify_zendesk_event(self.payload())

        assert result.action == ZendeskAction.RELAY
        assert result.event.ticket_id == "42"
        assert result.event.message == "We are looking into it."

    def test_comment_from_slack_user_is_ignored(self):
        result = classify_zendesk_event(self.payload(current_user_external_id="zensync-C1:U1"))

        assert result.action == ZendeskAction.IGNORE

    def test_private_comment_is_ignored(self):
        result = classify_zendesk_event(self.payload(is_public="false"))

        assert result.action == ZendeskAction.IGNORE

    def test_ticket_creation_is_ignored(self):
        result = classify_zendesk_event(self.payload(last_updated_at="2026-01-01T10:00:00Z"))

        assert result.action == ZendeskAction.IGNORE

    def test_missing_last_updated_is_rejected(self):
        result = classify_zendesk_event(self.payload(last_updated_at=None))

        assert result.action == ZendeskAction.REJECT

    @pytest.mark.parametrize("external_id", [None, "", "12345", "zensync-not-a-uuid", "other-4a3f2b1c-0000-4000-8000-000000000000"])
    def test_bad_external_id_is_rejected(self, external_id):
        result = classify_zendesk_event(self.payload(external_id=external_id))

        assert result.action == ZendeskAction.REJECT

    def test_merge_notice_is_ignored(self):
        result = classify_zendesk_event(self.payload(message="This request was closed and merged into request #123."))

        assert result.action == ZendeskAction.IGNORE

    def test_merge_notice_patterns(self):
        assert is_merge_notice("Requests #12, #13 were closed and merged into this request.")
        assert is_merge_notice("Request #12 was closed and merged into this request. Last comment in request #12:")
        assert not is_merge_notice("Merged the fix into main, closing soon.")

    def test_malformed_payload_is_rejected(self):
        result = classify_zendesk_event(self.payload(is_public={"nested": True}, message=["not", "text"]))

        assert result.action == ZendeskAction.REJECT
