# tests/test_membership_service.py
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from wellgroups.models.group import GroupStatus
from wellgroups.models.group_member import GroupMember, GroupRole
from wellgroups.models.group_message import MessageType
from wellgroups.schemas.group import GroupCreate, GroupInfoUpdate, GroupSettingsPatch
from wellgroups.services import events, group_membership, group_messaging
from wellgroups.services.errors import (
    AlreadyMember,
    CannotLeaveAsSponsor,
    CannotRemoveSponsor,
    Forbidden,
    GroupArchived,
    GroupFull,
    NotAMember,
    NotFound,
)


def _event_types(db, group_id, requester_id):
    return [e.type for e in group_membership.group_events(db, group_id, requester_id, limit=100)]


def test_join_with_display_code_posts_welcome(db, make_user, make_group):
    sponsor, newcomer = make_user("Sam"), make_user("Alex")
    group = make_group(sponsor, name="Step Squad")

    joined = group_membership.join_group(db, newcomer.id, group.invite_code_display.lower(), message="hi all")
    assert joined.id == group.id
    assert joined.current_member_count == 2
    assert group_membership.get_role(db, group.id, newcomer.id) == GroupRole.member

    page = group_messaging.list_messages(db, group.id, newcomer.id)
    assert [m.content for m in page.messages] == ["🎉 Alex joined the group! Welcome to Step Squad!"]
    assert page.messages[0].sender_id == "system"
    assert page.messages[0].message_type == MessageType.system_notification

    joined_events = [
        e for e in group_membership.group_events(db, group.id, sponsor.id) if e.type == events.MEMBER_JOINED
    ]
    assert joined_events[0].data["message"] == "hi all"


def test_join_errors(db, make_user, make_group, fill_group):
    sponsor, member = make_user(), make_user()
    group = make_group(sponsor)

    with pytest.raises(NotFound):
        group_membership.join_group(db, member.id, "ZZZ-ZZZ")

    group_membership.join_group(db, member.id, group.invite_code)
    with pytest.raises(AlreadyMember):
        group_membership.join_group(db, member.id, group.invite_code)
    with pytest.raises(AlreadyMember):
        group_membership.join_group(db, sponsor.id, group.invite_code)

    fill_group(group_membership.get_group(db, group.id, sponsor.id), make_user, 10)
    with pytest.raises(GroupFull):
        group_membership.join_group(db, make_user().id, group.invite_code)


def test_sponsor_cannot_leave_until_transfer(db, make_user, make_group):
    sponsor, member = make_user("Sponsor"), make_user("Member")
    group = make_group(sponsor)
    group_membership.join_group(db, member.id, group.invite_code)

    with pytest.raises(CannotLeaveAsSponsor):
        group_membership.leave_group(db, sponsor.id, group.id)

    group_membership.transfer_ownership(db, group.id, sponsor.id, member.id)
    group_membership.leave_group(db, sponsor.id, group.id, reason="moving away")

    members = group_membership.get_members(db, group.id, member.id)
    assert [(m.user_id, m.role) for m in members] == [(member.id, GroupRole.sponsor)]
    assert group_membership.get_group(db, group.id, member.id).owner_id == member.id

    contents = [m.content for m in group_messaging.list_messages(db, group.id, member.id).messages]
    assert contents[-1] == "👋 Sponsor has left the group (moving away)"
    assert _event_types(db, group.id, member.id)[:2] == [events.MEMBER_LEFT, events.OWNERSHIP_TRANSFERRED]


def test_leave_when_not_member(db, make_user, make_group):
    group = make_group(make_user())
    with pytest.raises(NotAMember):
        group_membership.leave_group(db, make_user().id, group.id)


def test_kick_rules(db, make_user, make_group):
    sponsor, a, b = make_user(), make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, a.id, group.invite_code)
    group_membership.join_group(db, b.id, group.invite_code)

    with pytest.raises(Forbidden):
        group_membership.remove_member(db, a.id, group.id, b.id)
    with pytest.raises(CannotRemoveSponsor):
        group_membership.remove_member(db, sponsor.id, group.id, sponsor.id)

    group_membership.remove_member(db, sponsor.id, group.id, b.id)
    assert group_membership.get_role(db, group.id, b.id) is None
    assert group_membership.get_capacity(db, group.id, sponsor.id).current_member_count == 2
    with pytest.raises(Forbidden):
        group_membership.get_members(db, group.id, b.id)


def test_archived_group_rejects_joins_and_messages(db, make_user, make_group):
    sponsor, member, late = make_user(), make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, member.id, group.invite_code)

    with pytest.raises(Forbidden):
        group_membership.archive_group(db, group.id, member.id)
    archived = group_membership.archive_group(db, group.id, sponsor.id)
    assert archived.status == GroupStatus.archived
    assert archived.archived_at is not None

    with pytest.raises(GroupArchived):
        group_membership.join_group(db, late.id, group.invite_code)
    with pytest.raises(GroupArchived):
        group_messaging.send_message(db, group.id, member.id, "anyone?")

    restored = group_membership.unarchive_group(db, group.id, sponsor.id)
    assert restored.status == GroupStatus.active
    assert restored.archived_at is None
    group_membership.join_group(db, late.id, group.invite_code)


def test_settings_and_info_updates(db, make_user, make_group):
    sponsor, member = make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, member.id, group.invite_code)

    patch = GroupSettingsPatch.model_validate({"notifications": {"inactive_members": False}})
    with pytest.raises(Forbidden):
        group_membership.update_settings(db, group.id, member.id, patch)

    updated = group_membership.update_settings(db, group.id, sponsor.id, patch)
    assert updated.settings.notifications.inactive_members is False
    assert updated.settings.notifications.new_member_joins is True
    assert updated.settings.activity_goals.daily_steps_goal == 8000

    renamed = group_membership.update_info(db, group.id, sponsor.id, GroupInfoUpdate(name="Night Owls"))
    assert renamed.name == "Night Owls"
    types = _event_types(db, group.id, sponsor.id)
    assert events.GROUP_RENAMED in types
    assert events.GROUP_SETTINGS_UPDATED in types


def test_delete_group_keeps_audit_trail(db, make_user, make_group):
    sponsor, member = make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, member.id, group.invite_code)

    with pytest.raises(Forbidden):
        group_membership.delete_group(db, group.id, member.id)

    group_membership.delete_group(db, group.id, sponsor.id)
    with pytest.raises(NotFound):
        group_membership.get_group(db, group.id, sponsor.id)
    assert group_membership.user_groups(db, member.id) == []

    trail = [e.type for e in events.list_group_events(db, group.id, limit=100)]
    assert trail[0] == events.GROUP_DELETED
    assert events.GROUP_CREATED in trail


def test_user_groups_lists_memberships(db, make_user, make_group):
    sponsor, member = make_user(), make_user()
    first = make_group(sponsor, name="First")
    second = make_group(sponsor, name="Second")
    group_membership.join_group(db, member.id, second.invite_code)

    assert [g.id for g in group_membership.user_groups(db, sponsor.id)] == [second.id, first.id]
    assert [g.id for g in group_membership.user_groups(db, member.id)] == [second.id]


def test_group_analytics_for_sponsor(db, make_user, make_group):
    sponsor, fresh, idle = make_user(), make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, fresh.id, group.invite_code)
    group_membership.join_group(db, idle.id, group.invite_code)

    five_days_ago = datetime.now(timezone.utc) - timedelta(days=5)
    row = db.query(GroupMember).filter_by(group_id=group.id, user_id=idle.id).one()
    row.last_active_at = five_days_ago
    row.joined_at = five_days_ago - timedelta(days=5)
    db.commit()

    with pytest.raises(Forbidden):
        group_membership.group_analytics(db, group.id, fresh.id)

    stats = group_membership.group_analytics(db, group.id, sponsor.id)
    assert stats.member_count == 3
    assert stats.active_members == 2
    assert stats.recent_joins == 2
    assert stats.group_age_days == 0
    assert {m.user_id: m.activity_score for m in stats.members} == {sponsor.id: 100, fresh.id: 100, idle.id: 50}
    assert [m.is_active for m in stats.members if m.user_id == idle.id] == [False]
    assert stats.average_activity_score == 83


def test_create_rejects_short_description():
    with pytest.raises(ValidationError):
        GroupCreate(name="Walkers", description="too short")
    assert GroupCreate(name="Walkers", description="  ").description == ""
    assert GroupCreate(name="Walkers", description=" Daily walks ").description == "Daily walks"
