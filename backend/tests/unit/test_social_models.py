from datetime import datetime, timezone

import pytest

from feedgraph.domain.social.models import (
    BUCKET_ACTIONS,
    Accepted,
    Block,
    Bucket,
    Friendship,
    FriendshipStatus,
    Pending,
    RelationshipStatus,
    UserAction,
    UserRef,
    block_key,
    pair_key,
)


def _friendship(state, user_a="alice", user_b="bob"):
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    return Friendship(
        id=pair_key(user_a, user_b),
        user_a=user_a,
        user_b=user_b,
        state=state,
        created_at=now,
        updated_at=now,
    )


def test_pair_key_is_order_independent():
    assert pair_key("bob", "alice") == pair_key("alice", "bob") == "alice_bob"


def test_keys_stay_distinct_when_ids_contain_the_separator():
    assert pair_key("a_b", "c") != pair_key("a", "b_c")
    assert pair_key("a%5Fb", "c") != pair_key("a_b", "c")
    assert block_key("x_y", "z") != block_key("x", "y_z")
    assert pair_key("b_c", "a") == pair_key("a", "b_c")


def test_status_for_each_party():
    pending = _friendship(Pending(initiator="alice"))
    assert pending.status is FriendshipStatus.PENDING
    assert pending.status_for("alice") is RelationshipStatus.PENDING_SENT
    assert pending.status_for("bob") is RelationshipStatus.PENDING_RECEIVED
    assert pending.status_for("carol") is RelationshipStatus.NONE

    accepted = _friendship(Accepted())
    assert accepted.is_accepted
    assert accepted.status_for("alice") is RelationshipStatus.FRIENDS
    assert accepted.status_for("bob") is RelationshipStatus.FRIENDS


def test_counterpart_rejects_outsiders():
    friendship = _friendship(Accepted())
    assert friendship.counterpart("alice") == "bob"
    assert friendship.counterpart("bob") == "alice"
    with pytest.raises(ValueError):
        friendship.counterpart("carol")


def test_friendship_document_round_trip_keeps_state():
    original = _friendship(Pending(initiator="alice"))
    doc = original.to_document()
    assert doc["status"] == "pending"
    assert doc["user1"] == "alice"
    restored = Friendship.from_document(original.id, doc)
    assert restored == original
    assert restored.state == Pending(initiator="alice")


def test_block_document_and_key():
    block = Block(blocker_id="alice", blocked_id="bob", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert block.id == "alice_bob"
    assert Block.from_document(block.to_document()) == block


def test_user_ref_defaults_to_public():
    user = UserRef.from_document("alice", {"handle": "Alice"})
    assert user.handle == "Alice"
    assert user.is_private is False


def test_every_bucket_has_exactly_one_action():
    assert set(BUCKET_ACTIONS) == set(Bucket)
    assert BUCKET_ACTIONS[Bucket.DISCOVERABLE] is UserAction.ADD
    assert BUCKET_ACTIONS[Bucket.INCOMING] is UserAction.ACCEPT_OR_REJECT
    assert BUCKET_ACTIONS[Bucket.OUTGOING] is UserAction.WITHDRAW
    assert BUCKET_ACTIONS[Bucket.BLOCKED] is UserAction.UNBLOCK
    assert BUCKET_ACTIONS[Bucket.SELF] is UserAction.NONE
