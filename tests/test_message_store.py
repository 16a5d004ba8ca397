# tests/test_message_store.py
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.sql.dml import Delete

from wellgroups.models.group_message import GroupMessage, MessageType
from wellgroups.models.message_reaction import MessageReaction
from wellgroups.services import group_membership, message_store
from wellgroups.services.atomic import run_atomic
from wellgroups.services.errors import Forbidden, InvalidReply, NotAuthor, NotFound, WrongType


@pytest.fixture
def chat(db, make_user, make_group):
    sponsor, member, other = make_user("Sponsor"), make_user("Member"), make_user("Other")
    group = make_group(sponsor)
    group_membership.join_group(db, member.id, group.invite_code)
    group_membership.join_group(db, other.id, group.invite_code)
    return group, sponsor, member, other


def _post(db, group_id, sender_id, content, **kw):
    return run_atomic(db, lambda: message_store.append(db, group_id, sender_id, content, **kw))


def test_pagination_55_messages(db, make_user, make_group):
    sponsor = make_user()
    group = make_group(sponsor)
    # одинаковое время у соседей: порядок всё равно полный за счёт id
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(55):
        db.add(
            GroupMessage(
                group_id=group.id,
                sender_id=sponsor.id,
                content=f"m{i}",
                message_type=MessageType.text,
                created_at=base + timedelta(seconds=i // 2),
            )
        )
    db.commit()
    all_ids = list(
        db.scalars(
            select(GroupMessage.id).where(GroupMessage.group_id == group.id).order_by(GroupMessage.id)
        )
    )

    first = message_store.page(db, group.id, 50)
    assert len(first["messages"]) == 50
    assert first["has_more"] is True
    assert first["oldest_message_id"] == first["messages"][0].id

    second = message_store.page(db, group.id, 30, first["oldest_message_id"])
    assert len(second["messages"]) == 5
    assert second["has_more"] is False

    # более старая страница + более новая = вся история по возрастанию, без дыр и дублей
    stitched = [m.id for m in second["messages"]] + [m.id for m in first["messages"]]
    assert stitched == all_ids


def test_pagination_unknown_cursor(db, make_user, make_group):
    group = make_group(make_user())
    with pytest.raises(NotFound):
        message_store.page(db, group.id, 10, before_message_id=999999)


def test_empty_group_page(db, make_user, make_group):
    group = make_group(make_user())
    # в новой группе нет даже системных сообщений
    result = message_store.page(db, group.id, 10)
    assert result == {"messages": [], "has_more": False, "oldest_message_id": None}


def test_toggle_reaction_twice(db, chat):
    group, sponsor, member, _ = chat
    msg = _post(db, group.id, member.id, "hello")

    first = run_atomic(db, lambda: message_store.toggle_reaction(db, msg.id, sponsor.id, "👍"))
    second = run_atomic(db, lambda: message_store.toggle_reaction(db, msg.id, sponsor.id, "👍"))

    assert (first, second) == ("added", "removed")
    remaining = db.scalar(
        select(func.count()).select_from(MessageReaction).where(MessageReaction.message_id == msg.id)
    )
    assert remaining == 0


def test_reaction_summary(db, chat):
    group, sponsor, member, other = chat
    msg = _post(db, group.id, member.id, "hello")
    for user_id, emoji in ((sponsor.id, "👍"), (other.id, "👍"), (other.id, "🔥")):
        run_atomic(db, lambda: message_store.toggle_reaction(db, msg.id, user_id, emoji))

    summary = message_store.reactions_for(db, [msg.id])
    assert summary == {msg.id: {"👍": [sponsor.id, other.id], "🔥": [other.id]}}


def test_edit_rules(db, chat):
    group, sponsor, member, _ = chat
    text = _post(db, group.id, member.id, "hello")
    note = _post(db, group.id, member.id, "heads up", message_type=MessageType.system_notification)

    with pytest.raises(NotAuthor):
        run_atomic(db, lambda: message_store.edit(db, text.id, sponsor.id, "hacked"))
    with pytest.raises(WrongType):
        run_atomic(db, lambda: message_store.edit(db, note.id, member.id, "changed"))

    edited = run_atomic(db, lambda: message_store.edit(db, text.id, member.id, "hello, all"))
    assert edited.content == "hello, all"
    assert edited.edited_at is not None


def test_system_messages_cannot_be_edited_by_anyone(db, chat):
    group, sponsor, _, _ = chat
    system = _post(db, group.id, None, "System says hi", message_type=MessageType.system_notification)
    with pytest.raises(NotAuthor):
        run_atomic(db, lambda: message_store.edit(db, system.id, sponsor.id, "x"))


def test_delete_permissions_and_orphaned_replies(db, chat):
    group, sponsor, member, other = chat
    question = _post(db, group.id, member.id, "question?")
    reply = _post(db, group.id, other.id, "answer", reply_to_id=question.id)
    run_atomic(db, lambda: message_store.toggle_reaction(db, question.id, other.id, "❤️"))

    with pytest.raises(Forbidden):
        run_atomic(db, lambda: message_store.delete_message(db, question.id, other.id, None))

    # спонсор может удалить чужое
    sponsor_role = group_membership.get_role(db, group.id, sponsor.id)
    run_atomic(db, lambda: message_store.delete_message(db, question.id, sponsor.id, sponsor_role))

    with pytest.raises(NotFound):
        message_store.get_message(db, question.id)
    survivor = message_store.get_message(db, reply.id)
    db.refresh(survivor)
    assert survivor.reply_to_id is None
    assert db.scalar(select(func.count()).select_from(MessageReaction)) == 0


def test_reply_must_stay_in_group(db, make_user, make_group, chat):
    group, _, member, _ = chat
    elsewhere = make_group(make_user(), name="Other group")
    foreign = _post(db, elsewhere.id, None, "elsewhere", message_type=MessageType.system_notification)

    with pytest.raises(InvalidReply):
        _post(db, group.id, member.id, "re", reply_to_id=foreign.id)
    with pytest.raises(InvalidReply):
        _post(db, group.id, member.id, "re", reply_to_id=424242)


def test_cursor_page_is_stable_when_new_messages_arrive(db, chat):
    group, sponsor, member, _ = chat
    # в ленте уже два приветствия из фикстуры
    for i in range(6):
        _post(db, group.id, member.id, f"old {i}")

    first = message_store.page(db, group.id, 4)
    assert [m.content for m in first["messages"]] == ["old 2", "old 3", "old 4", "old 5"]

    for i in range(5):
        _post(db, group.id, sponsor.id, f"new {i}")

    second = message_store.page(db, group.id, 4, first["oldest_message_id"])
    first_ids = {m.id for m in first["messages"]}
    second_ids = [m.id for m in second["messages"]]

    assert first_ids.isdisjoint(second_ids)
    assert max(second_ids) < min(first_ids)
    assert [m.content for m in second["messages"]][-2:] == ["old 0", "old 1"]
    assert second["has_more"] is False


def test_toggle_reaction_when_identical_add_wins_the_race(db, chat, monkeypatch):
    """
    Параллельный такой же вызов вставил реакцию после нашего DELETE:
    INSERT падает на UNIQUE, откатывается только SAVEPOINT, и вызов становится снятием.
    """
    group, sponsor, member, _ = chat
    msg = _post(db, group.id, member.id, "hello")
    db.add(MessageReaction(message_id=msg.id, user_id=sponsor.id, emoji="👍", created_at=datetime.now(timezone.utc)))
    db.commit()

    real_execute = db.execute
    lagged = []

    def execute_with_lagging_delete(statement, *args, **kwargs):
        # первый DELETE «не видит» строку конкурента
        if isinstance(statement, Delete) and not lagged:
            lagged.append(statement)
            return SimpleNamespace(rowcount=0)
        return real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute_with_lagging_delete)

    def op():
        same_tx = message_store.append(db, group.id, sponsor.id, "nice!")
        return same_tx.id, message_store.toggle_reaction(db, msg.id, sponsor.id, "👍")

    same_tx_id, result = run_atomic(db, op)
    monkeypatch.undo()

    assert lagged
    assert result == "removed"
    assert db.scalar(select(func.count()).select_from(MessageReaction)) == 0
    # работа до SAVEPOINT в той же транзакции сохранилась
    assert message_store.get_message(db, same_tx_id).content == "nice!"
