"""Tests for the in-memory record store."""
import pytest
from datetime import datetime, timezone
from contentpipe.store.base import eq, gte, in_, lte, RecordFilter
from contentpipe.store.memory import InMemoryRecordStore


@pytest.mark.asyncio
async def test_insert_assigns_id_and_created_at(records):
    row = await records.insert("scripts", {"product_id": "p-1"})

    assert row["id"]
    assert row["created_at"].tzinfo is not None
    assert await records.get("scripts", row["id"]) == row


@pytest.mark.asyncio
async def test_rows_are_copied(records):
    source = {"id": "r-1", "tags": ["a"]}
    await records.insert("trends", source)
    source["tags"].append("mutated")

    row = await records.get("trends", "r-1")
    row["tags"].append("also mutated")

    assert (await records.get("trends", "r-1"))["tags"] == ["a"]


@pytest.mark.asyncio
async def test_select_filters_order_and_paginate():
    store = InMemoryRecordStore(seed={"trends": [
        {"id": "t-1", "category": "home", "score": 3},
        {"id": "t-2", "category": "tech", "score": 9},
        {"id": "t-3", "category": "home", "score": 7},
        {"id": "t-4", "category": "home", "score": None},
    ]})

    rows = await store.select("trends", filters=[eq("category", "home")], order_by="score", descending=True)
    assert [r["id"] for r in rows] == ["t-3", "t-1", "t-4"]

    rows = await store.select("trends", filters=[gte("score", 3), lte("score", 7)], order_by="score")
    assert [r["id"] for r in rows] == ["t-1", "t-3"]

    rows = await store.select("trends", filters=[in_("id", ["t-2", "t-4"])])
    assert {r["id"] for r in rows} == {"t-2", "t-4"}

    rows = await store.select("trends", order_by="id", limit=2, offset=1)
    assert [r["id"] for r in rows] == ["t-2", "t-3"]


def test_range_filters_skip_missing_values():
    assert RecordFilter(field="score", op="gte", value=1).matches({"score": None}) is False
    assert RecordFilter(field="score", op="neq", value=1).matches({"score": None}) is True


@pytest.mark.asyncio
async def test_update_and_delete(records):
    row = await records.insert("experiments", {"id": "e-1", "variation_label": "a"})

    updated = await records.update("experiments", "e-1", {"variation_label": "b", "id": "ignored"})
    assert updated["variation_label"] == "b"
    assert updated["id"] == "e-1"
    assert updated["created_at"] == row["created_at"]

    assert await records.update("experiments", "missing", {"x": 1}) is None
    assert (await records.delete("experiments", "e-1"))["id"] == "e-1"
    assert await records.get("experiments", "e-1") is None


@pytest.mark.asyncio
async def test_datetime_range_filters(records):
    march = datetime(2025, 3, 5, tzinfo=timezone.utc)
    await records.insert("published_posts", {"id": "a", "posted_at": march})
    await records.insert("published_posts", {"id": "b", "posted_at": datetime(2025, 4, 1, tzinfo=timezone.utc)})

    rows = await records.select("published_posts", filters=[lte("posted_at", march)])

    assert [r["id"] for r in rows] == ["a"]


@pytest.mark.asyncio
async def test_missing_values_sort_first_ascending_last_descending():
    store = InMemoryRecordStore(seed={"trends": [
        {"id": "t-1", "score": 3},
        {"id": "t-2", "score": None},
        {"id": "t-3", "score": 7},
    ]})

    ascending = await store.select("trends", order_by="score")
    descending = await store.select("trends", order_by="score", descending=True)

    assert [r["id"] for r in ascending] == ["t-2", "t-1", "t-3"]
    assert [r["id"] for r in descending] == ["t-3", "t-1", "t-2"]
