import pytest
from unittest.mock import Mock

import requests
from slack_sdk.errors import SlackApiError

from app.integrations.base import IntegrationError, AuthenticationError, RateLimitError
from app.integrations.zendesk.client import ZendeskClient
from app.integrations.zendesk.models import ZendeskComment, needs_follow_up
from app.integrations.slack.client import SlackClient, SlackApiCallError


def response(status_code=200, json_data=None, text="", headers=None):
    mock = Mock()
    mock.status_code = status_code
    mock.json.return_value = json_data if json_data is not None else {}
    mock.text = text
    mock.headers = headers or {}
    return mock


@pytest.fixture
def zendesk(monkeypatch):
    monkeypatch.setattr("app.integrations.zendesk.client.time.sleep", lambda seconds: None)
    client = ZendeskClient({"subdomain": "acme", "email": "admin@acme.com", "token": "secret"})
    client.session = Mock()
    return client


class TestZendeskClient:
    """Test Zendesk API client with a mocked HTTP session"""

    def test_requires_credentials(self):
        client = ZendeskClient({"subdomain": "acme"})

        assert client.is_enabled is False
        with pytest.raises(AuthenticationError):
            client.create_ticket({}, "key")

    def test_basic_auth_header(self):
        client = ZendeskClient({"subdomain": "acme", "email": "admin@acme.com", "token": "secret"})

        # base64("admin@acme.com/token:secret")
        assert client.session.headers["Authorization"] == "Basic YWRtaW5AYWNtZS5jb20vdG9rZW46c2VjcmV0"

    def test_create_ticket_sends_idempotency_key(self, zendesk):
        zendesk.session.request.return_value = response(201, {"ticket": {"id": 7}})

        ticket = zendesk.create_ticket({"subject": "Hi"}, "C1100")

        assert ticket["id"] == 7
        args, kwargs = zendesk.session.request.call_args
        assert args == ("POST", "https://acme.zendesk.com/api/v2/tickets.json")
        assert kwargs["headers"] == {"Idempotency-Key": "C1100"}
        assert kwargs["json"] == {"ticket": {"subject": "Hi"}}

    def test_update_ticket_appends_comment(self, zendesk):
        zendesk.session.request.return_value = response(200, {"ticket": {"id": 7, "status": "open"}})

        result = zendesk.update_ticket("7", ZendeskComment(html_body="<p>hi</p>", author_id=3), "C1105")

        assert result.ok is True
        assert result.status == "open"
        _, kwargs = zendesk.session.request.call_args
        assert kwargs["json"] == {
            "ticket": {"comment": {"html_body": "<p>hi</p>", "public": True, "author_id": 3}, "status": "open"}
        }

    def test_closed_ticket_needs_follow_up(self, zendesk):
        zendesk.session.request.return_value = response(422, {
            "error": "RecordInvalid",
            "details": {"status": [{"description": "Status: closed prevents ticket update"}]},
        })

        result = zendesk.update_ticket("7", ZendeskComment(html_body="x"), "C1110")

        assert result.ok is False
        assert result.needs_follow_up is True

    def test_deleted_ticket_needs_follow_up(self, zendesk):
        zendesk.session.request.return_value = response(404, {"error": "RecordNotFound"})

        assert zendesk.update_ticket("7", ZendeskComment(html_body="x")).needs_follow_up is True

    def test_other_validation_errors_raise(self, zendesk):
        zendesk.session.request.return_value = response(422, {"error": "RecordInvalid", "details": {}}, text="invalid")

        with pytest.raises(IntegrationError):
            zendesk.update_ticket("7", ZendeskComment(html_body="x"))

    def test_server_errors_are_retried(self, zendesk):
        zendesk.session.request.side_effect = [
            response(503, text="unavailable"),
            response(200, {"user": {"id": 99}}),
        ]

        assert zendesk.create_or_update_user("Jane (via Slack)", "zensync-C1:U1") == 99
        assert zendesk.session.request.call_count == 2

    def test_rate_limit_exhausted(self, zendesk):
        zendesk.session.request.return_value = response(429, headers={"Retry-After": "1"})

        with pytest.raises(RateLimitError):
            zendesk.create_ticket({}, "key")

    def test_bad_credentials(self, zendesk):
        zendesk.session.request.return_value = response(401)

        with pytest.raises(AuthenticationError):
            zendesk.create_ticket({}, "key")

    def test_network_errors_raise_integration_error(self, zendesk):
        zendesk.session.request.side_effect = requests.exceptions.ConnectionError("down")

        with pytest.raises(IntegrationError):
            zendesk.create_ticket({}, "key")

    def test_connection_check(self, zendesk):
        zendesk.session.request.return_value = response(200, {"user": {"id": 1}})

        assert zendesk.test_connection() is True
        args, _ = zendesk.session.request.call_args
        assert args == ("GET", "https://acme.zendesk.com/api/v2/users/me.json")

    def test_connection_check_with_bad_credentials(self, zendesk):
        zendesk.session.request.return_value = response(401)

        assert zendesk.test_connection() is False

    def test_upload_file_returns_token(self, zendesk):
        zendesk.session.request.return_value = response(201, {"upload": {"token": "tok-1"}})

        assert zendesk.upload_file("a.png", b"data", "image/png") == "tok-1"
        _, kwargs = zendesk.session.request.call_args
        assert kwargs["params"] == {"filename": "a.png"}
        assert kwargs["headers"] == {"Content-Type": "image/png"}

    def test_undelivered_warning_is_private(self, zendesk):
        zendesk.session.request.return_value = response(200, {"ticket": {"id": 7}})

        zendesk.post_undelivered_warning("7", "Channel archived")

        _, kwargs = zendesk.session.request.call_args
        comment = kwargs["json"]["ticket"]["comment"]
        assert comment["public"] is False
        assert "Your message was not delivered!" in comment["html_body"]


class TestNeedsFollowUp:
    """Test detection of closed or deleted tickets"""

    def test_unrelated_errors(self):
        assert needs_follow_up({"error": "RecordInvalid", "details": {"subject": [{"description": "too long"}]}}) is False
        assert needs_follow_up({}) is False
        assert needs_follow_up(None) is False


@pytest.fixture
def slack():
    client = SlackClient({"bot_token": "xoxb-test"})
    client.bot_client = Mock()
    return client


def slack_error(code):
    return SlackApiError(message=code, response={"ok": False, "error": code})


class TestSlackClient:
    """Test Slack client with a mocked WebClient"""

    def test_post_message_as_agent(self, slack):
        slack.bot_client.chat_postMessage.return_value = Mock(data={"ok": True, "ts": "200.000100"})

        result = slack.post_message("C1", "Hi", thread_ts="100.0", username="Agent", icon_url="https://img")

        assert result.ok is True
        assert result.ts == "200.000100"
        slack.bot_client.chat_postMessage.assert_called_once_with(
            channel="C1", text="Hi", thread_ts="100.0", username="Agent", icon_url="https://img"
        )

    def test_undeliverable_error_returned(self, slack):
        slack.bot_client.chat_postMessage.side_effect = slack_error("is_archived")

        result = slack.post_message("C1", "Hi")

        assert result.ok is False
        assert result.error == "is_archived"

    def test_other_errors_raise(self, slack):
        slack.bot_client.chat_postMessage.side_effect = slack_error("internal_error")

        with pytest.raises(SlackApiCallError) as exc_info:
            slack.post_message("C1", "Hi")
        assert exc_info.value.error_code == "internal_error"

    def test_rate_limited(self, slack):
        slack.bot_client.users_profile_get.side_effect = slack_error("ratelimited")

        with pytest.raises(RateLimitError):
            slack.get_user_profile("U1")

    def test_revoked_token(self, slack):
        slack.bot_client.users_profile_get.side_effect = slack_error("token_revoked")

        with pytest.raises(AuthenticationError):
            slack.get_user_profile("U1")

    def test_user_profile(self, slack):
        slack.bot_client.users_profile_get.return_value = Mock(data={
            "ok": True,
            "profile": {"display_name": "", "real_name": "Jane Doe", "image_72": "https://img/jane.png"},
        })

        identity = slack.get_user_profile("U1")

        assert identity.username == "Jane Doe"
        assert identity.image_url == "https://img/jane.png"

    def test_lookup_by_email(self, slack):
        slack.bot_client.users_lookupByEmail.return_value = Mock(data={
            "ok": True,
            "user": {"profile": {"display_name": "jane", "image_192": "https://img/jane-192.png"}},
        })

        identity = slack.lookup_user_by_email("jane@acme.com")

        assert identity.username == "jane"
        assert identity.image_url == "https://img/jane-192.png"

    def test_channel_info(self, slack):
        slack.bot_client.conversations_info.return_value = Mock(data={
            "ok": True,
            "channel": {"id": "C1", "name": "support", "is_private": True, "is_ext_shared": True},
        })

        info = slack.get_channel_info("C1")

        assert info.name == "support"
        assert info.is_private is True
        assert info.is_shared is True

    def test_connection_check(self, slack):
        slack.bot_client.auth_test.return_value = Mock(data={"ok": True, "user_id": "UBOT"})

        assert slack.test_connection() is True

    def test_connection_check_with_revoked_token(self, slack):
        slack.bot_client.auth_test.side_effect = slack_error("invalid_auth")

        assert slack.test_connection() is False
