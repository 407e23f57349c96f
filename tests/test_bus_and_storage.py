"""Tests for the in-memory message bus and the local object store."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from src.ingest.bus import InMemoryMessageBus
from src.ingest.events import (
    AvailableDocument,
    ObjectCreated,
    TextExtracted,
    document_id_from_key,
    object_created_topic,
)
from src.ingest.storage import LocalObjectStore


class TestEvents:
    def test_document_ids(self) -> None:
        assert document_id_from_key("abc.json") == "abc"
        assert AvailableDocument(uuid="abc").document_id == "abc"
        assert ObjectCreated(bucket="bitstreams", key="abc.pdf").document_id == "abc"
        assert TextExtracted(uuid="abc", bucket="extracted", key="abc.txt").document_id == "abc"

    def test_object_created_topic(self) -> None:
        assert object_created_topic("metadata") == "metadata.object-created"


class TestInMemoryMessageBus:
    @pytest.mark.asyncio
    async def test_delivers_to_every_subscriber(self) -> None:
        received: list[tuple[str, str]] = []

        async def first(msg: AvailableDocument) -> None:
            received.append(("first", msg.uuid))

        async def second(msg: AvailableDocument) -> None:
            received.append(("second", msg.uuid))

        async with InMemoryMessageBus() as bus:
            bus.subscribe("topic", first)
            bus.subscribe("topic", second)
            await bus.publish("topic", AvailableDocument(uuid="a"))
            await bus.join()

        assert sorted(received) == [("first", "a"), ("second", "a")]

    @pytest.mark.asyncio
    async def test_failed_handler_is_redelivered(self) -> None:
        attempts: list[str] = []

        async def flaky(msg: AvailableDocument) -> None:
            attempts.append(msg.uuid)
            if len(attempts) < 2:
                raise RuntimeError("transient")

        bus = InMemoryMessageBus(max_deliveries=3)
        bus.subscribe("topic", flaky)
        async with bus:
            await bus.publish("topic", AvailableDocument(uuid="a"))
            await bus.join()

        assert attempts == ["a", "a"]
        assert bus.dead_letters == []

    @pytest.mark.asyncio
    async def test_dead_letter_after_max_deliveries(self) -> None:
        attempts = 0

        async def broken(msg: AvailableDocument) -> None:
            nonlocal attempts
            attempts += 1
            raise RuntimeError("permanent")

        async with InMemoryMessageBus(max_deliveries=3) as bus:
            bus.subscribe("topic", broken)
            message = AvailableDocument(uuid="a")
            await bus.publish("topic", message)
            await bus.join()

        assert attempts == 3
        assert bus.dead_letters == [("topic", message)]

    @pytest.mark.asyncio
    async def test_join_waits_for_follow_up_messages(self) -> None:
        done: list[str] = []

        async with InMemoryMessageBus() as bus:

            async def relay(msg: AvailableDocument) -> None:
                await bus.publish("second", AvailableDocument(uuid=msg.uuid + "!"))

            async def sink(msg: AvailableDocument) -> None:
                done.append(msg.uuid)

            bus.subscribe("first", relay)
            bus.subscribe("second", sink)
            await bus.publish("first", AvailableDocument(uuid="a"))
            await bus.join()

        assert done == ["a!"]

    @pytest.mark.asyncio
    async def test_publish_without_subscribers_is_dropped(self) -> None:
        async with InMemoryMessageBus() as bus:
            await bus.publish("nobody", AvailableDocument(uuid="a"))
            await bus.join()


class TestLocalObjectStore:
    @pytest.mark.asyncio
    async def test_put_then_get(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        await store.put("bitstreams", "abc.pdf", b"%PDF-1.4")
        assert await store.get("bitstreams", "abc.pdf") == b"%PDF-1.4"
        assert (tmp_path / "bitstreams" / "abc.pdf").exists()

    @pytest.mark.asyncio
    async def test_missing_object_is_none(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        assert await store.get("metadata", "missing.json") is None
        assert await store.get_json("metadata", "missing.json") is None

    @pytest.mark.asyncio
    async def test_put_overwrites(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        await store.put_json("metadata", "abc.json", {"v": 1})
        await store.put_json("metadata", "abc.json", {"v": 2})
        assert await store.get_json("metadata", "abc.json") == {"v": 2}
        assert [p.name for p in (tmp_path / "metadata").iterdir()] == ["abc.json"]

    @pytest.mark.asyncio
    async def test_put_announces_object_created(self, tmp_path: Path) -> None:
        created: list[ObjectCreated] = []

        async def on_created(event: ObjectCreated) -> None:
            created.append(event)

        async with InMemoryMessageBus() as bus:
            bus.subscribe(object_created_topic("metadata"), on_created)
            store = LocalObjectStore(tmp_path, bus)
            await store.put_json("metadata", "abc.json", {"uuid": "abc"})
            await bus.join()

        assert created == [ObjectCreated(bucket="metadata", key="abc.json")]

    def test_rejects_escaping_keys(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        for key in ("../outside", "/abs", ""):
            with pytest.raises(ValueError):
                store.path("metadata", key)

    @pytest.mark.asyncio
    async def test_file_io_runs_off_the_event_loop_thread(self, tmp_path: Path) -> None:
        threads: list[int] = []

        class RecordingStore(LocalObjectStore):
            @staticmethod
            def _write(target: Path, data: bytes) -> None:
                threads.append(threading.get_ident())
                LocalObjectStore._write(target, data)

            @staticmethod
            def _read(target: Path) -> bytes | None:
                threads.append(threading.get_ident())
                return LocalObjectStore._read(target)

        store = RecordingStore(tmp_path)
        await store.put("metadata", "abc.json", b"{}")
        assert await store.get("metadata", "abc.json") == b"{}"

        assert len(threads) == 2
        assert threading.get_ident() not in threads
