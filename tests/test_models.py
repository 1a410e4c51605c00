"""Tests for the document models."""

from datetime import UTC, datetime

from eventlottery.domain.models import (
    DeliveryRecord,
    EventRecord,
    Invitation,
    Notification,
    NotificationCategory,
    NotificationPreference,
    UserProfile,
)
from eventlottery.store.base import EVENTS, USERS, DocumentSnapshot


def test_event_record_reads_camel_case_and_nulls():
    snapshot = DocumentSnapshot(
        EVENTS,
        "e1",
        {
            "name": "Gala",
            "maxAttendees": 5,
            "waitingList": ["u1"],
            "invites": None,
            "lotteryComplete": None,
            "posterUrl": "https://example.test/p.png",
        },
    )

    event = EventRecord.from_snapshot(snapshot)

    assert event.id == "e1"
    assert event.max_attendees == 5
    assert event.invites == []
    assert event.lottery_complete is False
    assert not event.has_task
    # Fields the models do not know about survive a round trip
    assert event.to_document()["posterUrl"] == "https://example.test/p.png"


def test_to_document_uses_stored_names_without_id():
    invitation = Invitation(
        id="i1",
        event_id="e1",
        organizer_id="o1",
        recipient_id="u1",
        send_time=datetime(2026, 10, 19, tzinfo=UTC),
    )

    document = invitation.to_document()

    assert "id" not in document
    assert document["eventId"] == "e1"
    assert document["recipientId"] == "u1"
    assert document["accepted"] is False


def test_notification_category():
    system = Notification(id="n1", title="T", description="D")
    organizer = Notification(id="n2", title="T", description="D", organizer_id="o1")

    assert system.category is NotificationCategory.SYSTEM
    assert organizer.category is NotificationCategory.ORGANIZER


def test_preferences_are_opt_out():
    assert NotificationPreference.from_flag(None).allows
    assert NotificationPreference.from_flag(True).allows
    assert not NotificationPreference.from_flag(False).allows


def test_user_profile_preference_per_category():
    profile = UserProfile.from_snapshot(
        DocumentSnapshot(USERS, "u1", {"fcmToken": "t", "organizerNotifications": False})
    )

    assert profile.preference(NotificationCategory.ORGANIZER) is NotificationPreference.DISABLED
    assert profile.preference(NotificationCategory.SYSTEM) is NotificationPreference.UNSET


def test_delivery_record_without_sent_field_counts_as_sent():
    assert DeliveryRecord(id="r1", user_id="u1", notification_id="n1").was_sent
    assert not DeliveryRecord(id="r1", user_id="u1", notification_id="n1", sent=False).was_sent
