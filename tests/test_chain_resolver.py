"""Tests for joint build record chain resolution."""

import pytest
from unittest.mock import AsyncMock

from recordbot.core import ChainResolver
from recordbot.db.models import BuildRecord
from recordbot.db.store import EntityKind
from recordbot.errors import ChainIntegrityError, NotFoundError, StorageError

pytestmark = pytest.mark.asyncio


def _ids(entries):
    return sorted(e.id for e in entries)


async def test_single_tie_resolves_to_anchor(resolver, insert_entry):
    anchor = await insert_entry(10)
    tie = await insert_entry(10, joint_root_id=anchor.id)

    found = await resolver.find_anchor(tie.id)

    assert found.id == anchor.id
    assert found.is_joint is False
    assert _ids(await resolver.find_chain_members(anchor.id)) == [anchor.id, tie.id]


async def test_three_hop_chain(resolver, insert_entry):
    first = await insert_entry(10)
    second = await insert_entry(10, joint_root_id=first.id)
    third = await insert_entry(10, joint_root_id=second.id)

    assert (await resolver.find_anchor(third.id)).id == first.id
    assert _ids(await resolver.find_chain_members(first.id)) == [first.id, second.id, third.id]
    assert _ids(await resolver.find_chain_members(third.id)) == [first.id, second.id, third.id]


async def test_anchor_is_its_own_anchor(resolver, insert_entry):
    anchor = await insert_entry(10)
    tie = await insert_entry(10, joint_root_id=anchor.id)

    once = await resolver.find_anchor(tie.id)
    twice = await resolver.find_anchor(once.id)

    assert once == twice


async def test_every_member_resolves_to_same_anchor(resolver, insert_entry):
    anchor = await insert_entry(10)
    a = await insert_entry(10, joint_root_id=anchor.id)
    b = await insert_entry(10, joint_root_id=anchor.id)
    c = await insert_entry(10, joint_root_id=a.id)
    d = await insert_entry(10, joint_root_id=c.id)
    # an unrelated chain under the same record
    other = await insert_entry(10)
    await insert_entry(10, joint_root_id=other.id)

    members = await resolver.find_chain_members(anchor.id)

    assert _ids(members) == sorted([anchor.id, a.id, b.id, c.id, d.id])
    for member in members:
        assert (await resolver.find_anchor(member.id)).id == anchor.id


async def test_members_exclude_other_records(resolver, insert_entry):
    anchor = await insert_entry(10)
    tie = await insert_entry(10, joint_root_id=anchor.id)
    await insert_entry(11)

    assert _ids(await resolver.find_chain_members(tie.id)) == [anchor.id, tie.id]


async def test_lone_anchor_is_whole_chain(resolver, insert_entry):
    anchor = await insert_entry(10)

    members = await resolver.find_chain_members(anchor.id)

    assert [m.id for m in members] == [anchor.id]


async def test_members_ordered_chronologically(resolver, insert_entry):
    anchor = await insert_entry(10)
    first_tie = await insert_entry(10, joint_root_id=anchor.id)
    second_tie = await insert_entry(10, joint_root_id=anchor.id)

    members = await resolver.find_chain_members(second_tie.id)

    assert [m.id for m in members] == [anchor.id, first_tie.id, second_tie.id]
    assert [m.created_at for m in members] == sorted(m.created_at for m in members)


async def test_missing_entry_raises_not_found(resolver):
    with pytest.raises(NotFoundError):
        await resolver.find_anchor(999)
    with pytest.raises(NotFoundError):
        await resolver.find_chain_members(999)


async def test_two_entry_cycle_is_detected(resolver, insert_entry):
    a = await insert_entry(10, joint_root_id=2, entry_id=1)
    b = await insert_entry(10, joint_root_id=1, entry_id=2)

    for entry in (a, b):
        with pytest.raises(ChainIntegrityError) as exc_info:
            await resolver.find_anchor(entry.id)
        assert exc_info.value.entry_id in (a.id, b.id)


async def test_self_loop_is_detected(resolver, insert_entry):
    entry = await insert_entry(10, joint_root_id=7, entry_id=7)

    with pytest.raises(ChainIntegrityError):
        await resolver.find_chain_members(entry.id)


async def test_dangling_pointer_after_delete(resolver, store, insert_entry):
    anchor = await insert_entry(10)
    tie = await insert_entry(10, joint_root_id=anchor.id)
    await store.delete(EntityKind.BUILD_RECORD, anchor.id)

    with pytest.raises(ChainIntegrityError) as exc_info:
        await resolver.find_anchor(tie.id)
    assert exc_info.value.entry_id == tie.id


async def test_pointer_into_other_record_is_rejected(resolver, insert_entry):
    foreign = await insert_entry(11)
    tie = await insert_entry(10, joint_root_id=foreign.id)

    with pytest.raises(ChainIntegrityError):
        await resolver.find_anchor(tie.id)


async def test_depth_limit(store, insert_entry):
    first = await insert_entry(10)
    second = await insert_entry(10, joint_root_id=first.id)
    third = await insert_entry(10, joint_root_id=second.id)

    assert (await ChainResolver(store, max_depth=2).find_anchor(third.id)).id == first.id
    with pytest.raises(ChainIntegrityError):
        await ChainResolver(store, max_depth=1).find_anchor(third.id)


async def test_invalid_depth_limit(store):
    with pytest.raises(ValueError):
        ChainResolver(store, max_depth=0)


async def test_storage_failure_is_wrapped():
    store = AsyncMock()
    store.get_by_id.side_effect = StorageError("disk gone")
    resolver = ChainResolver(store)

    with pytest.raises(StorageError) as exc_info:
        await resolver.find_anchor(1)
    assert "find_anchor" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, StorageError)


async def test_storage_failure_while_loading_members():
    anchor = BuildRecord(id=1, build_id=1, record_id=10, submitter_id=5)
    store = AsyncMock()
    store.get_by_id.return_value = anchor
    store.query_by_foreign_key.side_effect = StorageError("disk gone")
    resolver = ChainResolver(store)

    with pytest.raises(StorageError) as exc_info:
        await resolver.find_chain_members(1)
    assert "find_chain_members" in str(exc_info.value)
