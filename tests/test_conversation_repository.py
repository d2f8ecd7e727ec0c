import uuid
from datetime import timedelta

import pytest

from chat_store.core.errors import Conflict, NotFound
from chat_store.models import Conversation, ConversationType, MemberRole, Message, MessageRead, Participant
from chat_store.schemas.conversation import ConversationCreate
from chat_store.schemas.participant import ParticipantCreate


def test_create_and_get_conversation(repo, users):
    owner, _, _ = users
    created = repo.conversations.create_conversation(
        ConversationCreate(creator_id=owner, name="  Weekend plans ", description="Hiking")
    )

    fetched = repo.conversations.get_conversation_by_id(created.id)
    assert fetched.id == created.id
    assert fetched.type == ConversationType.group
    assert fetched.name == "Weekend plans"
    assert fetched.creator_id == owner
    assert fetched.created_at is not None
    assert fetched.updated_at is not None


def test_create_conversation_keeps_supplied_id(repo, users):
    conversation_id = uuid.uuid4()
    created = repo.conversations.create_conversation(ConversationCreate(id=conversation_id, creator_id=users[0]))
    assert created.id == conversation_id


def test_get_missing_conversation_raises_not_found(repo):
    missing = uuid.uuid4()
    with pytest.raises(NotFound) as exc_info:
        repo.conversations.get_conversation_by_id(missing)
    assert exc_info.value.target == missing
    assert exc_info.value.operation == "get_conversation_by_id"


def test_update_conversation(repo, users):
    created = repo.conversations.create_conversation(ConversationCreate(creator_id=users[0], name="Old"))
    before = created.updated_at

    created.name = "New"
    created.description = "Renamed"
    created.is_private = True
    repo.conversations.update_conversation(created)

    repo.db.expire_all()
    fetched = repo.conversations.get_conversation_by_id(created.id)
    assert fetched.name == "New"
    assert fetched.description == "Renamed"
    assert fetched.is_private is True
    assert fetched.updated_at >= before


def test_update_missing_conversation_raises_not_found(repo, users):
    ghost = Conversation(id=uuid.uuid4(), creator_id=users[0], name="ghost")
    with pytest.raises(NotFound):
        repo.conversations.update_conversation(ghost)


def test_delete_conversation_cascades(repo, users, make_group, send):
    owner, member, _ = users
    conversation = make_group(owner, member)
    message = send(conversation.id, owner)
    repo.messages.mark_messages_as_read(member, [message.id])

    repo.conversations.delete_conversation(conversation.id)

    db = repo.db
    assert db.query(Conversation).count() == 0
    assert db.query(Message).count() == 0
    assert db.query(Participant).count() == 0
    assert db.query(MessageRead).count() == 0


def test_delete_missing_conversation_raises_not_found(repo):
    with pytest.raises(NotFound):
        repo.conversations.delete_conversation(uuid.uuid4())


def test_list_conversations_scenario_a(repo, users, make_group):
    viewer, other, _ = users
    for index in range(25):
        make_group(viewer, other, name=f"Group {index}")
    # Not visible to the viewer
    make_group(other, name="Private")

    page_one, total = repo.conversations.list_conversations(viewer, 1, 10)
    assert len(page_one) == 10
    assert total == 25

    page_three, total = repo.conversations.list_conversations(viewer, 3, 10)
    assert len(page_three) == 5
    assert total == 25


def test_pages_concatenate_to_full_listing(repo, users, make_group):
    viewer, _, _ = users
    for index in range(7):
        make_group(viewer, name=f"Group {index}")

    everything = repo.conversations.get_conversations_by_user_id(viewer)
    paged = []
    for page in range(1, 5):
        items, total = repo.conversations.list_conversations(viewer, page, 2)
        assert total == 7
        paged.extend(items)

    assert [c.id for c in paged] == [c.id for c in everything]
    assert len({c.id for c in paged}) == 7


def test_listing_rejects_non_positive_paging(repo, users):
    with pytest.raises(ValueError):
        repo.conversations.list_conversations(users[0], 0, 10)
    with pytest.raises(ValueError):
        repo.conversations.list_conversations(users[0], 1, 0)


def test_listing_orders_by_recent_activity(repo, users, make_group, send):
    viewer, other, _ = users
    quiet = make_group(viewer, other, name="Quiet")
    busy = make_group(viewer, other, name="Busy")

    # Sending into the older conversation moves it to the top
    send(quiet.id, other, "ping")

    conversations = repo.conversations.get_conversations_by_user_id(viewer)
    assert [c.id for c in conversations] == [quiet.id, busy.id]


def test_listing_excludes_conversations_the_viewer_left(repo, users, make_group):
    viewer, other, _ = users
    conversation = make_group(other, viewer)
    repo.members.remove_member(conversation.id, viewer)

    items, total = repo.conversations.list_conversations(viewer, 1, 10)
    assert items == []
    assert total == 0


def test_create_direct_conversation_adds_owner_and_member(repo, users):
    first, second, _ = users
    conversation = repo.conversations.create_direct_conversation(first, second)

    assert conversation.type == ConversationType.direct
    assert conversation.creator_id == first
    assert conversation.max_members == 2
    assert conversation.is_private is True

    roles = {m.participant_id: m.role for m in repo.members.get_room_members(conversation.id)}
    assert roles == {first: MemberRole.owner, second: MemberRole.member}


def test_direct_conversation_scenario_d(repo, users):
    first, second, _ = users
    created = repo.conversations.create_direct_conversation(first, second)

    assert repo.conversations.get_direct_conversation(second, first).id == created.id
    assert repo.conversations.get_direct_conversation(first, second).id == created.id


def test_get_direct_conversation_not_found(repo, users):
    first, second, _ = users
    with pytest.raises(NotFound):
        repo.conversations.get_direct_conversation(first, second)


def test_get_direct_conversation_ignores_other_pairs(repo, users):
    first, second, third = users
    repo.conversations.create_direct_conversation(first, second)
    with pytest.raises(NotFound):
        repo.conversations.get_direct_conversation(first, third)


def test_get_direct_conversation_requires_exactly_two_active_members(repo, users, db):
    first, second, third = users
    conversation = repo.conversations.create_direct_conversation(first, second)
    # A stray third membership, written around the join rules
    db.add(Participant(conversation_id=conversation.id, participant_id=third, role=MemberRole.member))
    db.commit()

    with pytest.raises(NotFound):
        repo.conversations.get_direct_conversation(first, second)


def test_get_direct_conversation_with_yourself_is_rejected(repo, users):
    first, second, _ = users
    repo.conversations.create_direct_conversation(first, second)

    with pytest.raises(ValueError):
        repo.conversations.get_direct_conversation(first, first)
    with pytest.raises(ValueError):
        repo.conversations.get_or_create_direct_conversation(first, first)


def test_second_direct_conversation_for_pair_conflicts(repo, users, db):
    first, second, _ = users
    repo.conversations.create_direct_conversation(first, second)

    with pytest.raises(Conflict):
        repo.conversations.create_direct_conversation(second, first)

    # The failed attempt left nothing behind
    assert db.query(Conversation).count() == 1
    assert db.query(Participant).count() == 2


def test_direct_conversation_with_yourself_is_rejected(repo, users):
    with pytest.raises(ValueError):
        repo.conversations.create_direct_conversation(users[0], users[0])


def test_get_or_create_direct_conversation_reuses_existing(repo, users):
    first, second, _ = users
    created = repo.conversations.get_or_create_direct_conversation(first, second)
    again = repo.conversations.get_or_create_direct_conversation(second, first)

    assert again.id == created.id
    assert repo.db.query(Conversation).count() == 1


def test_get_or_create_direct_conversation_recovers_from_race(repo, users, monkeypatch):
    first, second, _ = users
    winner = repo.conversations.create_direct_conversation(first, second)

    # Simulate losing the race: the first lookup misses, the insert then conflicts
    real_lookup = repo.conversations.get_direct_conversation
    calls = []

    def flaky_lookup(a, b):
        calls.append((a, b))
        if len(calls) == 1:
            raise NotFound("Direct conversation not found")
        return real_lookup(a, b)

    monkeypatch.setattr(repo.conversations, "get_direct_conversation", flaky_lookup)

    result = repo.conversations.get_or_create_direct_conversation(second, first)
    assert result.id == winner.id
    assert len(calls) == 2


def test_direct_conversation_reopens_after_a_participant_leaves(repo, users, db):
    first, second, _ = users
    original = repo.conversations.create_direct_conversation(first, second)
    repo.members.remove_member(original.id, second)

    with pytest.raises(NotFound):
        repo.conversations.get_direct_conversation(first, second)

    reopened = repo.conversations.get_or_create_direct_conversation(second, first)

    assert reopened.id == original.id
    assert db.query(Conversation).count() == 1
    roles = {m.participant_id: m.role for m in repo.members.get_room_members(original.id)}
    assert roles == {first: MemberRole.owner, second: MemberRole.member}
    assert repo.conversations.get_direct_conversation(first, second).id == original.id


def test_direct_conversation_reopens_after_both_leave(repo, users):
    first, second, _ = users
    original = repo.conversations.create_direct_conversation(first, second)
    repo.members.remove_member(original.id, first)
    repo.members.remove_member(original.id, second)

    reopened = repo.conversations.get_or_create_direct_conversation(first, second)

    assert reopened.id == original.id
    roles = {m.participant_id: m.role for m in repo.members.get_room_members(original.id)}
    assert roles == {first: MemberRole.owner, second: MemberRole.member}


def test_create_group_conversation_adds_everyone(repo, users):
    owner, first, second = users
    conversation = repo.conversations.create_group_conversation(
        ConversationCreate(creator_id=owner, name="  Team  ", description="weekly sync", max_members=10),
        [first, second],
    )

    assert conversation.type == ConversationType.group
    assert conversation.name == "Team"
    roles = {m.participant_id: m.role for m in repo.members.get_room_members(conversation.id)}
    assert roles == {owner: MemberRole.owner, first: MemberRole.member, second: MemberRole.member}


@pytest.mark.parametrize(
    "name, participants, max_members",
    [
        (None, "one", 0),
        ("Team", "none", 0),
        ("Team", "creator", 0),
        ("Team", "duplicate", 0),
        ("Team", "two", 2),
    ],
)
def test_create_group_conversation_rejects_bad_requests(repo, users, db, name, participants, max_members):
    owner, first, second = users
    participant_ids = {
        "one": [first],
        "none": [],
        "creator": [owner, first],
        "duplicate": [first, first],
        "two": [first, second],
    }[participants]

    with pytest.raises(ValueError):
        repo.conversations.create_group_conversation(
            ConversationCreate(creator_id=owner, name=name, max_members=max_members), participant_ids
        )
    assert db.query(Conversation).count() == 0
    assert db.query(Participant).count() == 0


def test_create_group_conversation_caps_participant_list(repo, users):
    participant_ids = [uuid.uuid4() for _ in range(1001)]
    with pytest.raises(ValueError):
        repo.conversations.create_group_conversation(ConversationCreate(creator_id=users[0], name="Crowd"), participant_ids)


def test_list_conversations_with_unread(repo, users, make_group, send, db):
    viewer, friend, _ = users
    chatty = make_group(viewer, friend, name="Chatty")
    empty = make_group(viewer, friend, name="Empty")

    first = send(chatty.id, friend, "one")
    second = send(chatty.id, friend, "two")
    last = send(chatty.id, viewer, "three")
    # Make the ordering unambiguous regardless of clock resolution
    base = first.created_at
    db.query(Message).filter(Message.id == second.id).update({Message.created_at: base + timedelta(seconds=1)})
    db.query(Message).filter(Message.id == last.id).update({Message.created_at: base + timedelta(seconds=2)})
    db.commit()

    repo.messages.mark_messages_as_read(viewer, [first.id])

    items, total = repo.conversations.list_conversations_with_unread(viewer, 1, 10)
    assert total == 2
    by_id = {item.id: item for item in items}

    assert by_id[chatty.id].unread_count == 1
    assert by_id[chatty.id].last_message is not None
    assert by_id[chatty.id].last_message.id == last.id
    assert by_id[chatty.id].last_message.content == "three"

    assert by_id[empty.id].unread_count == 0
    assert by_id[empty.id].last_message is None

    # Activity ordering: the conversation with messages was touched last
    assert items[0].id == chatty.id


def test_list_conversations_with_unread_is_per_viewer(repo, users, make_group, send):
    first, second, _ = users
    conversation = make_group(first, second)
    send(conversation.id, first, "from first")
    send(conversation.id, second, "from second")

    mine, _ = repo.conversations.list_conversations_with_unread(first, 1, 10)
    theirs, _ = repo.conversations.list_conversations_with_unread(second, 1, 10)
    assert mine[0].unread_count == 1
    assert theirs[0].unread_count == 1


def test_list_conversations_with_unread_pages(repo, users, make_group):
    viewer, _, _ = users
    for index in range(5):
        make_group(viewer, name=f"Group {index}")

    items, total = repo.conversations.list_conversations_with_unread(viewer, 2, 2)
    assert total == 5
    assert len(items) == 2

    items, total = repo.conversations.list_conversations_with_unread(viewer, 3, 2)
    assert len(items) == 1
