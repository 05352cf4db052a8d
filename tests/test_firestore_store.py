"""Firestore store tests; they run only against the Firestore emulator."""

import asyncio
import os
import uuid

import pytest

pytestmark = pytest.mark.skipif(
    not os.getenv("FIRESTORE_EMULATOR_HOST"),
    reason="FIRESTORE_EMULATOR_HOST not set",
)


def _store():
    from ap_backlog.store.firestore import FirestoreStore

    return FirestoreStore()


def _table() -> str:
    return f"test_{uuid.uuid4().hex[:12]}"


def test_insert_select_update_delete():
    table = _table()

    async def scenario():
        store = _store()
        ids = await store.insert(table, [{"n": n, "group": "even" if n % 2 == 0 else "odd"} for n in range(6)])
        rows, total = await store.select(table, {"group": "even"}, ["-n"], range_start=0, range_end=1)
        updated = await store.update(table, {"flag": True}, {"group": "odd"})
        flagged, _ = await store.select(table, {"flag": True})
        deleted = await store.delete(table, {"id": ids})
        _, remaining = await store.select(table)
        return [row["n"] for row in rows], total, updated, len(flagged), deleted, remaining

    values, total, updated, flagged, deleted, remaining = asyncio.run(scenario())
    assert values == [4, 2]
    assert total == 3
    assert (updated, flagged) == (3, 3)
    assert (deleted, remaining) == (6, 0)


def test_membership_filter_over_the_in_limit():
    table = _table()

    async def scenario():
        store = _store()
        ids = await store.insert(table, [{"n": n} for n in range(45)])
        rows, total = await store.select(table, {"id": ids[:40]}, ["n"], range_start=5, range_end=9)
        await store.delete(table, {"id": ids})
        return [row["n"] for row in rows], total

    values, total = asyncio.run(scenario())
    assert total == 40
    assert values == [5, 6, 7, 8, 9]


def test_transaction_writes_apply_after_body():
    table = _table()

    async def scenario():
        store = _store()
        [row_id] = await store.insert(table, [{"value": 1}])

        async def body(tx):
            row = await tx.get(table, row_id)
            await tx.update(table, row_id, {"value": row["value"] + 1})
            return await tx.insert(table, {"value": 10})

        new_id = await store.run_transaction(body)
        rows, _ = await store.select(table, order=["value"])
        await store.delete(table, {"id": [row_id, new_id]})
        return [row["value"] for row in rows]

    assert asyncio.run(scenario()) == [2, 10]
