import pytest
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from app.models import SlackConnection, SlackConnectionStatus, Channel, ChannelStatus, ChannelType
from app.database.repositories.connection_repository import SlackConnectionRepository
from app.database.repositories.channel_repository import ChannelRepository
from app.services.channel_service import ChannelService, UPGRADE_NOTICE, MISSING_ZENDESK_NOTICE


def lifecycle_payload(event):
    return {"type": "event_callback", "api_app_id": "A0001", "event_id": "EvLifecycle", "event": event}


def joined(channel_id, user="UBOT", inviter="U1"):
    return lifecycle_payload({
        "type": "member_joined_channel",
        "user": user,
        "channel": channel_id,
        "inviter": inviter,
    })


@pytest.fixture
def channel_service(db: Session, fake_slack) -> ChannelService:
    return ChannelService(db, slack_client_factory=lambda config: fake_slack)


@pytest.fixture
def channels_by_age(db: Session, slack_connection: SlackConnection):
    """Five member channels; C4 is the oldest and C0 the newest"""
    now = datetime.utcnow()
    for i in range(5):
        db.add(Channel(
            slack_connection_id=slack_connection.id,
            slack_channel_identifier=f"C{i}",
            name=f"channel-{i}",
            is_member=True,
            created_at=now - timedelta(minutes=i),
        ))
    db.commit()


def statuses(db: Session, slack_connection: SlackConnection):
    repo = ChannelRepository(db)
    return {
        channel.slack_channel_identifier: channel.status
        for channel in repo.list_member_channels(slack_connection.id)
    }


class TestChannelJoin:
    """Test the bot joining channels"""

    def test_join_within_limit_is_active(self, db: Session, channel_service: ChannelService,
                                         slack_connection: SlackConnection, zendesk_bearer_token, fake_slack):
        fake_slack.channel_names["C1"] = "support"

        result = channel_service.handle_lifecycle_event(slack_connection.id, joined("C1"))

        assert result["channel_status"] == "active"
        channel = ChannelRepository(db).get_by_identifier(slack_connection.id, "C1")
        assert channel.name == "support"
        assert channel.type == ChannelType.PUBLIC
        assert channel.is_member is True
        assert channel.status == ChannelStatus.ACTIVE
        assert fake_slack.ephemerals == []

    def test_join_over_limit_is_pending_upgrade(self, db: Session, channel_service: ChannelService,
                                                slack_connection: SlackConnection, zendesk_bearer_token, fake_slack):
        # New installations are on the free plan, which allows one channel
        channel_service.handle_lifecycle_event(slack_connection.id, joined("C1"))
        result = channel_service.handle_lifecycle_event(slack_connection.id, joined("C2"))

        assert result["channel_status"] == "pending_upgrade"
        channel = ChannelRepository(db).get_by_identifier(slack_connection.id, "C2")
        assert channel.status == ChannelStatus.PENDING_UPGRADE
        assert channel.is_member is True
        assert fake_slack.ephemerals == [{"channel": "C2", "user": "U1", "text": UPGRADE_NOTICE}]

    def test_rejoin_does_not_count_itself(self, db: Session, channel_service: ChannelService,
                                          slack_connection: SlackConnection, zendesk_bearer_token):
        channel_service.handle_lifecycle_event(slack_connection.id, joined("C1"))
        result = channel_service.handle_lifecycle_event(slack_connection.id, joined("C1"))

        assert result["channel_status"] == "active"

    def test_join_with_expired_subscription_is_pending(self, db: Session, channel_service: ChannelService,
                                                       slack_connection: SlackConnection, zendesk_bearer_token):
        SlackConnectionRepository(db).update_subscription(
            slack_connection, "unlimited", datetime.utcnow() - timedelta(days=7)
        )

        result = channel_service.handle_lifecycle_event(slack_connection.id, joined("C1"))

        assert result["channel_status"] == "pending_upgrade"

    def test_join_without_zendesk_posts_notice(self, channel_service: ChannelService,
                                               slack_connection: SlackConnection, fake_slack):
        channel_service.handle_lifecycle_event(slack_connection.id, joined("C1"))

        assert fake_slack.ephemerals == [{"channel": "C1", "user": "U1", "text": MISSING_ZENDESK_NOTICE}]

    def test_other_members_joining_are_ignored(self, db: Session, channel_service: ChannelService,
                                               slack_connection: SlackConnection):
        result = channel_service.handle_lifecycle_event(slack_connection.id, joined("C1", user="U7"))

        assert result["status"] == "ignored"
        assert ChannelRepository(db).get_by_identifier(slack_connection.id, "C1") is None


class TestChannelLifecycle:
    """Test leave, archive, rename and id changes"""

    def test_leave_marks_not_member(self, db: Session, channel_service: ChannelService,
                                    slack_connection: SlackConnection, channel: Channel):
        channel_service.handle_lifecycle_event(
            slack_connection.id, lifecycle_payload({"type": "channel_left", "channel": "C1"})
        )

        db.refresh(channel)
        assert channel.is_member is False

    def test_archive_as_message_subtype(self, db: Session, channel_service: ChannelService,
                                        slack_connection: SlackConnection, channel: Channel):
        channel_service.handle_lifecycle_event(
            slack_connection.id,
            lifecycle_payload({"type": "message", "subtype": "channel_archive", "channel": "C1", "user": "U1"}),
        )

        db.refresh(channel)
        assert channel.is_member is False

    def test_unarchive_skips_quota_check(self, db: Session, channel_service: ChannelService,
                                         slack_connection: SlackConnection):
        repo = ChannelRepository(db)
        repo.upsert(slack_connection.id, "C1", {"is_member": True})
        archived = repo.upsert(slack_connection.id, "C2", {"is_member": False})

        channel_service.handle_lifecycle_event(
            slack_connection.id, lifecycle_payload({"type": "channel_unarchive", "channel": "C2"})
        )

        db.refresh(archived)
        assert archived.is_member is True
        assert archived.status == ChannelStatus.ACTIVE

    def test_rename(self, db: Session, channel_service: ChannelService,
                    slack_connection: SlackConnection, channel: Channel):
        channel_service.handle_lifecycle_event(
            slack_connection.id,
            lifecycle_payload({"type": "channel_rename", "channel": {"id": "C1", "name": "help-desk"}}),
        )

        db.refresh(channel)
        assert channel.name == "help-desk"

    def test_id_change_keeps_row(self, db: Session, channel_service: ChannelService,
                                 slack_connection: SlackConnection, channel: Channel):
        original_pk = channel.id

        result = channel_service.handle_lifecycle_event(
            slack_connection.id,
            lifecycle_payload({"type": "channel_id_changed", "old_channel_id": "C1", "new_channel_id": "C1NEW"}),
        )

        assert result["action"] == "channel_id_changed"
        repo = ChannelRepository(db)
        assert repo.get_by_identifier(slack_connection.id, "C1") is None
        assert repo.get_by_identifier(slack_connection.id, "C1NEW").id == original_pk

    def test_untracked_channel_is_ignored(self, channel_service: ChannelService, slack_connection: SlackConnection):
        result = channel_service.handle_lifecycle_event(
            slack_connection.id, lifecycle_payload({"type": "channel_deleted", "channel": "C404"})
        )

        assert result["status"] == "ignored"


class TestUninstall:
    """Test app uninstall"""

    def test_uninstall_leaves_all_channels(self, db: Session, channel_service: ChannelService,
                                           slack_connection: SlackConnection, channels_by_age):
        result = channel_service.handle_uninstall(slack_connection.id)

        assert result["channels_left"] == 5
        db.refresh(slack_connection)
        assert slack_connection.status == SlackConnectionStatus.UNINSTALLED
        assert ChannelRepository(db).count_member_channels(slack_connection.id) == 0


class TestSubscriptionChange:
    """Test channel quota rebalancing on plan changes"""

    def test_downgrade_keeps_oldest_channels_active(self, db: Session, channel_service: ChannelService,
                                                    slack_connection: SlackConnection, channels_by_age):
        channel_service.apply_subscription_change(slack_connection.id, "unlimited", None)
        result = channel_service.apply_subscription_change(slack_connection.id, "starter", None)

        assert result["active"] == 3
        assert result["pending"] == 2
        assert statuses(db, slack_connection) == {
            "C4": ChannelStatus.ACTIVE,
            "C3": ChannelStatus.ACTIVE,
            "C2": ChannelStatus.ACTIVE,
            "C1": ChannelStatus.PENDING_UPGRADE,
            "C0": ChannelStatus.PENDING_UPGRADE,
        }

    def test_upgrade_activates_everything(self, db: Session, channel_service: ChannelService,
                                          slack_connection: SlackConnection, channels_by_age):
        channel_service.apply_subscription_change(slack_connection.id, "free", None)
        channel_service.apply_subscription_change(slack_connection.id, "unlimited", None)

        assert set(statuses(db, slack_connection).values()) == {ChannelStatus.ACTIVE}

    def test_plan_and_period_recorded(self, db: Session, channel_service: ChannelService,
                                      slack_connection: SlackConnection):
        period_end = datetime(2030, 1, 1)

        channel_service.apply_subscription_change(slack_connection.id, "enterprise", period_end, "sub_123")

        db.refresh(slack_connection)
        assert slack_connection.plan == "enterprise"
        assert slack_connection.subscription_period_end == period_end
        assert slack_connection.subscription_id == "sub_123"

    def test_unknown_plan_suspends_all(self, db: Session, channel_service: ChannelService,
                                       slack_connection: SlackConnection, channels_by_age):
        channel_service.apply_subscription_change(slack_connection.id, "legacy", None)

        assert set(statuses(db, slack_connection).values()) == {ChannelStatus.PENDING_UPGRADE}
