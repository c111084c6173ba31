"""
Message store, reaction aggregation and retention tests
"""

from datetime import timedelta

import pytest

from huechat import messages
from huechat.errors import AlreadyDeleted, EmptyBody, Forbidden, NotFound, ValidationError, WindowExpired
from huechat.messages import RetentionSweeper
from huechat.models import Message, Reaction


def test_post_and_feed_oldest_first(chat, signup, clock):
    red = signup("#ff0000")
    first = chat.post(red, "  hello ")
    clock.advance(seconds=1)
    second = chat.post(red, "again")

    feed = chat.feed(red)

    assert [m.id for m in feed] == [first, second]
    assert feed[0].body == "hello"
    assert feed[0].author == "#ff0000"
    assert feed[0].display_name == "#ff0000"
    assert feed[0].edited_at is None
    assert feed[0].reactions == []


@pytest.mark.parametrize("body", ["", "   ", "\n\t"])
def test_blank_body_rejected(chat, signup, body):
    red = signup("#ff0000")
    with pytest.raises(EmptyBody):
        chat.post(red, body)


def test_overlong_body_rejected(chat, signup):
    red = signup("#ff0000")
    with pytest.raises(ValidationError):
        chat.post(red, "x" * 501)


def test_edit_window_scenario(db, chat, signup, clock):
    red = signup("#ff0000")
    message_id = chat.post(red, "hello")
    posted_at = clock.now

    clock.advance(seconds=30)
    chat.edit(red, message_id, "hello world")
    message = db.get(Message, message_id)
    assert message.body == "hello world"
    assert message.edited_at == posted_at + timedelta(seconds=30)
    assert message.edited_at >= message.created_at

    # the window runs from creation, not from the last edit
    clock.advance(seconds=31)
    with pytest.raises(WindowExpired):
        chat.edit(red, message_id, "too late")
    assert db.get(Message, message_id).body == "hello world"


def test_window_edge_is_inclusive(chat, signup, clock):
    red = signup("#ff0000")
    message_id = chat.post(red, "hello")
    clock.advance(seconds=60)
    chat.edit(red, message_id, "just in time")
    chat.delete(red, message_id)


def test_only_author_can_edit_or_delete(chat, signup):
    red = signup("#ff0000")
    green = signup("#00ff00")
    message_id = chat.post(red, "mine")

    with pytest.raises(Forbidden):
        chat.edit(green, message_id, "hijack")
    with pytest.raises(Forbidden):
        chat.delete(green, message_id)
    with pytest.raises(NotFound):
        chat.edit(red, 12345, "ghost")


def test_soft_delete_hides_message(db, chat, signup, clock):
    red = signup("#ff0000")
    keep = chat.post(red, "keep")
    gone = chat.post(red, "gone")
    chat.react(red, gone, "👍")

    chat.delete(red, gone)

    assert [m.id for m in chat.feed(red)] == [keep]
    assert chat.search(red, "gone") == []
    assert db.get(Message, gone).is_deleted is True
    assert db.query(Reaction).filter(Reaction.message_id == gone).count() == 1

    with pytest.raises(AlreadyDeleted):
        chat.edit(red, gone, "back")
    with pytest.raises(AlreadyDeleted):
        chat.delete(red, gone)


def test_delete_window_expired(chat, signup, clock):
    red = signup("#ff0000")
    message_id = chat.post(red, "hello")
    clock.advance(seconds=61)
    with pytest.raises(WindowExpired):
        chat.delete(red, message_id)


def test_reactions_aggregate_in_order(chat, signup):
    red = signup("#ff0000")
    green = signup("#00ff00")
    message_id = chat.post(red, "react to me")

    chat.react(red, message_id, "👍")
    chat.react(green, message_id, "👍")
    chat.react(green, message_id, "🎉")

    reactions = chat.feed(red)[0].reactions
    assert [r.model_dump() for r in reactions] == [
        {"emoji": "👍", "count": 2, "users": ["#ff0000", "#00ff00"]},
        {"emoji": "🎉", "count": 1, "users": ["#00ff00"]},
    ]


def test_reactions_are_idempotent(db, chat, signup):
    red = signup("#ff0000")
    message_id = chat.post(red, "hi")

    chat.react(red, message_id, "👍")
    chat.react(red, message_id, "👍")
    assert db.query(Reaction).count() == 1

    chat.unreact(red, message_id, "👍")
    chat.unreact(red, message_id, "👍")
    assert db.query(Reaction).count() == 0
    assert chat.feed(red)[0].reactions == []


def test_duplicate_reaction_race_is_a_no_op(db, chat, signup, monkeypatch):
    red = signup("#ff0000")
    message_id = chat.post(red, "hi")
    chat.react(red, message_id, "👍")

    # another request stored the same reaction after our existence check
    monkeypatch.setattr(messages, "_has_reaction", lambda *args: False)
    chat.react(red, message_id, "👍")

    assert db.query(Reaction).count() == 1
    [summary] = chat.feed(red)[0].reactions
    assert (summary.emoji, summary.count, summary.users) == ("👍", 1, ["#ff0000"])


def test_react_requires_live_message(chat, signup):
    red = signup("#ff0000")
    message_id = chat.post(red, "hi")
    with pytest.raises(NotFound):
        chat.react(red, 999, "👍")
    with pytest.raises(ValidationError):
        chat.react(red, message_id, " ")
    chat.delete(red, message_id)
    with pytest.raises(NotFound):
        chat.react(red, message_id, "👍")


def test_display_name_is_per_viewer(chat, signup):
    red = signup("#ff0000")
    green = signup("#00ff00")
    blue = signup("#0000ff")
    chat.send_friend_request(green, "#ff0000")
    chat.accept_friend_request(red, chat.list_pending_requests(red)[0].id)
    chat.set_nickname(green, "#ff0000", "Rosso")
    chat.post(red, "ciao")

    assert chat.feed(green)[0].display_name == "Rosso"
    assert chat.feed(blue)[0].display_name == "#ff0000"
    assert chat.feed(red)[0].display_name == "#ff0000"


def test_editable_flag(chat, signup, clock):
    red = signup("#ff0000")
    green = signup("#00ff00")
    chat.post(red, "hi")

    assert chat.feed(red)[0].editable is True
    assert chat.feed(green)[0].editable is False
    clock.advance(seconds=61)
    assert chat.feed(red)[0].editable is False


def test_feed_returns_latest_messages(chat, signup, clock):
    red = signup("#ff0000")
    ids = []
    for i in range(5):
        ids.append(chat.post(red, f"message {i}"))
        clock.advance(seconds=1)

    assert [m.id for m in chat.feed(red, limit=3)] == ids[2:]


def test_same_timestamp_ordered_by_id(chat, signup):
    red = signup("#ff0000")
    green = signup("#00ff00")
    first = chat.post(red, "one")
    second = chat.post(green, "two")
    assert [m.id for m in chat.feed(red)] == [first, second]
    assert [m.id for m in chat.search(red, "o")] == [second, first]


def test_search(chat, signup, clock):
    red = signup("#ff0000")
    green = signup("#00ff00")
    chat.send_friend_request(green, "#ff0000")
    chat.accept_friend_request(red, chat.list_pending_requests(red)[0].id)
    chat.set_nickname(green, "#ff0000", "Rosso")

    older = chat.post(red, "Pizza tonight?")
    clock.advance(seconds=1)
    newer = chat.post(green, "pizza sounds good")
    clock.advance(seconds=1)
    chat.post(green, "unrelated")

    assert [m.id for m in chat.search(green, "PIZZA")] == [newer, older]
    assert [m.id for m in chat.search(green, "#FF00")] == [older]
    assert [m.id for m in chat.search(green, "rosso")] == [older]
    # the nickname is green's, not blue's
    blue = signup("#0000ff")
    assert chat.search(blue, "rosso") == []
    assert chat.search(green, "   ") == []


def test_search_treats_wildcards_literally(chat, signup):
    red = signup("#ff0000")
    chat.post(red, "100% sure")
    chat.post(red, "1000 sure")
    assert [m.body for m in chat.search(red, "0%")] == ["100% sure"]


@pytest.mark.parametrize("query", ["Ärger", "ärger", "ÄRGER", "BÜRO"])
def test_search_folds_non_ascii_case(chat, signup, query):
    red = signup("#ff0000")
    chat.post(red, "Ärger im Büro")
    chat.post(red, "alles gut")
    assert [m.body for m in chat.search(red, query)] == ["Ärger im Büro"]


def test_retention_sweep_purges_old_messages(db, chat, signup, clock):
    red = signup("#ff0000")
    old = chat.post(red, "ancient history")
    chat.react(red, old, "👍")

    clock.advance(days=3)
    red = chat.authenticate("#ff0000", "hunter2").token
    fresh = chat.post(red, "today")
    chat.react(red, fresh, "🎉")

    assert messages.sweep_expired(db, clock.now - timedelta(hours=48)) == 1

    assert [m.id for m in chat.feed(red)] == [fresh]
    assert chat.search(red, "ancient") == []
    assert db.query(Reaction).filter(Reaction.message_id == old).count() == 0
    assert db.query(Reaction).count() == 1


def test_sweep_removes_orphaned_reactions(db, chat, signup, clock):
    red = signup("#ff0000")
    message_id = chat.post(red, "hi")
    chat.react(red, message_id, "👍")
    db.query(Message).filter(Message.id == message_id).delete()
    db.commit()

    messages.sweep_expired(db, clock.now - timedelta(hours=48))

    assert db.query(Reaction).count() == 0


def test_feed_runs_sweep_opportunistically(db, chat, signup, clock):
    red = signup("#ff0000")
    chat.post(red, "old")
    clock.advance(days=3)
    red = chat.authenticate("#ff0000", "hunter2").token

    assert chat.feed(red) == []
    assert db.query(Message).count() == 0


def test_sweeper_runs_at_most_once_per_interval(db, clock):
    sweeper = RetentionSweeper(retention=timedelta(hours=48), interval=timedelta(minutes=5))

    assert sweeper.maybe_run(db, clock.now) == 0
    assert sweeper.maybe_run(db, clock.now + timedelta(minutes=1)) is None
    assert sweeper.maybe_run(db, clock.now + timedelta(minutes=5)) == 0


def test_sweep_never_touches_editable_messages(db, chat, signup, clock):
    red = signup("#ff0000")
    message_id = chat.post(red, "fresh")
    messages.sweep_expired(db, clock.now - timedelta(hours=48))
    chat.edit(red, message_id, "still editable")
