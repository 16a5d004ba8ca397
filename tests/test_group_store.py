# tests/test_group_store.py
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select

from wellgroups.models.group import DEFAULT_MAX_MEMBERS, Group
from wellgroups.models.group_member import GroupMember, GroupRole
from wellgroups.models.group_message import GroupMessage
from wellgroups.models.message_reaction import MessageReaction
from wellgroups.models.read_marker import GroupReadMarker
from wellgroups.services import group_membership, group_messaging, group_store
from wellgroups.services.atomic import run_atomic
from wellgroups.services.errors import (
    AlreadyMember,
    CannotRemoveSponsor,
    Forbidden,
    GroupFull,
    InvalidInput,
    InvalidTarget,
    NotAMember,
)


def _assert_group_invariants(db, group_id):
    group = db.get(Group, group_id)
    db.refresh(group)
    rows = db.scalar(select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id))
    assert 0 < group.current_member_count <= group.max_members
    assert rows == group.current_member_count
    assert group_store.count_sponsors(db, group_id) == 1
    sponsor_id = db.scalar(
        select(GroupMember.user_id).where(GroupMember.group_id == group_id, GroupMember.role == GroupRole.sponsor)
    )
    assert sponsor_id == group.owner_id


def test_add_member_counts_and_rejects_duplicates(db, make_user, make_group):
    sponsor, user = make_user(), make_user()
    group = make_group(sponsor)

    run_atomic(db, lambda: group_store.add_member(db, group.id, user.id))
    with pytest.raises(AlreadyMember):
        run_atomic(db, lambda: group_store.add_member(db, group.id, user.id))

    _assert_group_invariants(db, group.id)
    assert group_store.get_group(db, group.id).current_member_count == 2


def test_capacity_is_never_exceeded(db, make_user, make_group, fill_group):
    sponsor = make_user()
    group = make_group(sponsor)
    fill_group(group, make_user, DEFAULT_MAX_MEMBERS)

    latecomer = make_user()
    with pytest.raises(GroupFull):
        run_atomic(db, lambda: group_store.add_member(db, group.id, latecomer.id))

    _assert_group_invariants(db, group.id)
    cap = group_store.capacity(group_store.get_group(db, group.id))
    assert cap["is_full"] is True
    assert cap["spots_remaining"] == 0
    assert cap["percentage_full"] == 100.0


def test_stale_reader_loses_the_last_spot(session_factory, db, make_user, make_group, fill_group):
    """Две сессии видят одно свободное место; вторая получает GroupFull, а не 11-го участника."""
    sponsor = make_user()
    group = make_group(sponsor)
    fill_group(group, make_user, DEFAULT_MAX_MEMBERS - 1)
    first, second = make_user(), make_user()

    s1, s2 = session_factory(), session_factory()
    try:
        # обе сессии загрузили группу с count = max - 1
        assert group_store.get_group(s1, group.id).current_member_count == DEFAULT_MAX_MEMBERS - 1
        assert group_store.get_group(s2, group.id).current_member_count == DEFAULT_MAX_MEMBERS - 1

        run_atomic(s1, lambda: group_store.add_member(s1, group.id, first.id))
        with pytest.raises(GroupFull):
            run_atomic(s2, lambda: group_store.add_member(s2, group.id, second.id))
    finally:
        s1.close()
        s2.close()

    _assert_group_invariants(db, group.id)
    assert group_store.get_member(db, group.id, second.id) is None


def test_concurrent_joins_for_last_spot(session_factory, db, make_user, make_group, fill_group):
    sponsor = make_user()
    group = make_group(sponsor)
    fill_group(group, make_user, DEFAULT_MAX_MEMBERS - 1)
    contenders = [make_user(), make_user()]
    barrier = threading.Barrier(len(contenders))

    def attempt(user_id):
        session = session_factory()
        try:
            barrier.wait()
            group_membership.join_group(session, user_id, group.invite_code)
            return "joined"
        except GroupFull:
            return "full"
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(contenders)) as pool:
        outcomes = list(pool.map(attempt, [u.id for u in contenders]))

    assert sorted(outcomes) == ["full", "joined"]
    _assert_group_invariants(db, group.id)
    assert group_store.get_group(db, group.id).current_member_count == DEFAULT_MAX_MEMBERS


def test_remove_member(db, make_user, make_group):
    sponsor, user = make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, user.id, group.invite_code)

    run_atomic(db, lambda: group_store.remove_member(db, group.id, user.id))
    assert group_store.get_member(db, group.id, user.id) is None
    _assert_group_invariants(db, group.id)

    with pytest.raises(NotAMember):
        run_atomic(db, lambda: group_store.remove_member(db, group.id, user.id))
    with pytest.raises(CannotRemoveSponsor):
        run_atomic(db, lambda: group_store.remove_member(db, group.id, sponsor.id))


def test_transfer_ownership_flips_roles(db, make_user, make_group):
    sponsor, user = make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, user.id, group.invite_code)

    with pytest.raises(InvalidTarget):
        run_atomic(db, lambda: group_store.transfer_ownership(db, group.id, sponsor.id, sponsor.id))
    with pytest.raises(Forbidden):
        run_atomic(db, lambda: group_store.transfer_ownership(db, group.id, user.id, sponsor.id))

    run_atomic(db, lambda: group_store.transfer_ownership(db, group.id, sponsor.id, user.id))
    assert group_store.get_role(db, group.id, user.id) == GroupRole.sponsor
    assert group_store.get_role(db, group.id, sponsor.id) == GroupRole.member
    _assert_group_invariants(db, group.id)


def test_settings_patch_merges_nested_fields(db, make_user, make_group):
    sponsor = make_user()
    group = make_group(sponsor)

    updated = run_atomic(
        db,
        lambda: group_store.update_settings(
            db, group.id, sponsor.id, {"is_public": True, "activity_goals": {"daily_steps_goal": 10000}}
        ),
    )
    assert updated.settings["is_public"] is True
    assert updated.settings["activity_goals"]["daily_steps_goal"] == 10000
    # остальные поля не тронуты
    assert updated.settings["activity_goals"]["weekly_food_entries_goal"] == 14
    assert updated.settings["notifications"]["new_member_joins"] is True
    assert updated.settings["allow_member_invites"] is True


def test_update_info_validates_lengths(db, make_user, make_group):
    sponsor = make_user()
    group = make_group(sponsor)
    with pytest.raises(InvalidInput):
        run_atomic(db, lambda: group_store.update_info(db, group.id, sponsor.id, name="ab"))
    with pytest.raises(InvalidInput):
        run_atomic(db, lambda: group_store.update_info(db, group.id, sponsor.id, description="too short"))

    updated = run_atomic(
        db, lambda: group_store.update_info(db, group.id, sponsor.id, name="  Evening Runners ")
    )
    assert updated.name == "Evening Runners"


def test_delete_group_cascades(db, make_user, make_group):
    sponsor, user = make_user(), make_user()
    group = make_group(sponsor)
    group_membership.join_group(db, user.id, group.invite_code)
    msg = group_messaging.send_message(db, group.id, user.id, "hello")
    group_messaging.send_message(db, group.id, sponsor.id, "hi", reply_to_id=msg.id)
    group_messaging.react(db, msg.id, sponsor.id, "👍")
    group_messaging.mark_read(db, group.id, user.id)

    with pytest.raises(Forbidden):
        run_atomic(db, lambda: group_store.delete_group(db, group.id, user.id))

    run_atomic(db, lambda: group_store.delete_group(db, group.id, sponsor.id))

    assert db.get(Group, group.id) is None
    for model, column in (
        (GroupMember, GroupMember.group_id),
        (GroupMessage, GroupMessage.group_id),
        (GroupReadMarker, GroupReadMarker.group_id),
    ):
        assert db.scalar(select(func.count()).select_from(model).where(column == group.id)) == 0
    assert db.scalar(select(func.count()).select_from(MessageReaction)) == 0
