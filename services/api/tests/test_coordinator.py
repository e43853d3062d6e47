"""
Tests for the viewer-side sync coordinator: store first, fallback cache
second, and the user only told when both fail.
"""
import asyncio

import pytest
import pytest_asyncio

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from client import (
    SAVE_FAILED_MESSAGE,
    HttpStoreClient,
    JsonFileFallbackCache,
    MemoryFallbackCache,
    RawFile,
    SavePhase,
    SyncCoordinator,
    annotations_key,
    versions_key,
)
from conftest import rect
from core.errors import NotFound, StoreUnavailable
from core.status import STATUS_COLORS, AnnotationStatus
from settings import Settings


def version_row(vid, number, file_id=42):
    return {
        "id": vid,
        "fileId": file_id,
        "versionNumber": number,
        "filePath": f"{file_id}/v{number}.pdf",
        "description": f"v{number}",
        "uploadedAt": "2026-01-0%dT10:00:00+00:00" % number,
        "uploadedById": 7,
        "metadata": {"originalFilename": "beam.pdf"},
        "fileUrl": f"/pdf/versions/{vid}/content",
    }


class FakeStore:
    """In-memory StoreClient. Set `down` to simulate an outage."""

    def __init__(self, versions=None, annotations=None):
        self.versions = list(versions or [])
        self.annotations = {a["id"]: dict(a) for a in (annotations or [])}
        self.calls = []
        self.down = False
        self.next_id = 100
        self.update_delays = []

    def _check(self, name):
        self.calls.append(name)
        if self.down:
            raise StoreUnavailable(f"{name}: connection refused")

    async def list_versions(self, file_id):
        self._check("list_versions")
        return [dict(v) for v in self.versions if v["fileId"] == file_id]

    async def create_version(self, file_id, content, filename, description, uploaded_by_id):
        self._check("create_version")
        number = max((v["versionNumber"] for v in self.versions), default=0) + 1
        row = version_row(self.next_id, number, file_id)
        row["description"] = description
        self.next_id += 1
        self.versions.append(row)
        return dict(row)

    async def list_annotations(self, version_id, project_id=None):
        self._check("list_annotations")
        return [dict(a) for a in self.annotations.values() if a["pdfVersionId"] == version_id]

    async def create_annotation(self, data):
        self._check("create_annotation")
        row = dict(data, id=self.next_id, createdAt="2026-02-01T09:00:00+00:00", taskId=None)
        self.next_id += 1
        self.annotations[row["id"]] = row
        return dict(row)

    async def update_annotation(self, annotation_id, partial):
        self._check("update_annotation")
        if self.update_delays:
            await asyncio.sleep(self.update_delays.pop(0))
        if annotation_id not in self.annotations:
            raise NotFound("annotation", annotation_id)
        self.annotations[annotation_id].update(partial)
        return dict(self.annotations[annotation_id])

    async def delete_annotation(self, annotation_id):
        self._check("delete_annotation")
        row = self.annotations.pop(annotation_id, None)
        if row is None:
            raise NotFound("annotation", annotation_id)
        return {"success": True, "versionId": row["pdfVersionId"]}

    async def promote_to_task(self, annotation_id):
        self._check("promote_to_task")
        task = {"id": 900 + annotation_id, "title": "task"}
        self.annotations[annotation_id]["taskId"] = task["id"]
        return {"task": task, "annotation": dict(self.annotations[annotation_id]), "linked": True}


def stored_annotation(aid, version_id, comment="existing"):
    return {
        "id": aid,
        "pdfVersionId": version_id,
        "projectId": 3,
        "rect": rect(),
        "color": STATUS_COLORS[AnnotationStatus.NEW_COMMENT],
        "comment": comment,
        "status": "new_comment",
        "createdAt": "2026-01-05T12:00:00+00:00",
        "createdById": 7,
        "assignedTo": None,
        "taskId": None,
        "deadline": None,
    }


@pytest.fixture
def store():
    return FakeStore(versions=[version_row(1, 1), version_row(2, 2)])


@pytest.fixture
def cache():
    return MemoryFallbackCache()


@pytest.fixture
def notices():
    return []


def make(store, cache, notices, file_ref=42, **kwargs):
    kwargs.setdefault("user", 7)
    kwargs.setdefault("project_id", 3)
    return SyncCoordinator(file_ref, store, cache, notifier=notices.append, **kwargs)


class TestLoad:
    @pytest.mark.asyncio
    async def test_store_wins(self, store, cache, notices):
        store.annotations = {5: stored_annotation(5, 2)}
        coord = make(store, cache, notices)
        assert await coord.load() == "store"
        assert [v.version_number for v in coord.versions] == [1, 2]
        assert coord.active_version_id == 2
        assert coord.pdf_url == "/pdf/versions/2/content"
        assert [a.id for a in coord.annotations] == [5]

    @pytest.mark.asyncio
    async def test_empty_store_list_is_authoritative(self, store, cache, notices):
        cache.put(annotations_key(42), [stored_annotation(99, 2, comment="stale")])
        coord = make(store, cache, notices)
        assert await coord.load() == "store"
        assert coord.annotations == []

    @pytest.mark.asyncio
    async def test_outage_falls_back_to_cache(self, store, cache, notices):
        store.down = True
        cache.put(versions_key(42), [
            {"id": 1, "versionNumber": 1, "filename": "beam.pdf", "fileUrl": "/a", "uploaded": None},
        ])
        cache.put(annotations_key(42), [stored_annotation(5, 1)])
        coord = make(store, cache, notices)
        assert await coord.load() == "cache"
        assert coord.active_version_id == 1
        assert [a.comment for a in coord.annotations] == ["existing"]
        assert notices == []

    @pytest.mark.asyncio
    async def test_outage_with_empty_cache_synthesizes_first_version(self, store, cache, notices):
        store.down = True
        coord = make(store, cache, notices, raw_file=RawFile("beam.pdf", "blob:beam"))
        assert await coord.load() == "cache"
        assert len(coord.versions) == 1
        v = coord.versions[0]
        assert v.version_number == 1
        assert v.filename == "beam.pdf"
        assert v.description == "Initial version"
        assert coord.pdf_url == "blob:beam"
        assert cache.get(versions_key(42))[0]["versionNumber"] == 1

    @pytest.mark.asyncio
    async def test_unresolvable_ref_skips_store(self, store, cache, notices):
        coord = make(store, cache, notices, file_ref="file_beam_pdf_3e8", raw_file=RawFile("beam.pdf", "blob:x"))
        assert await coord.load() == "cache"
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_malformed_cache_entries_skipped(self, store, cache, notices):
        store.down = True
        cache.put(annotations_key(42), [{"id": "local_x"}, stored_annotation(5, 1)])
        coord = make(store, cache, notices)
        await coord.load()
        assert [a.id for a in coord.annotations] == [5]

    @pytest.mark.asyncio
    async def test_store_timeout(self, store, cache, notices):
        async def slow(file_id):
            await asyncio.sleep(1)
            return []

        store.list_versions = slow
        coord = make(store, cache, notices, timeout=0.01, raw_file=RawFile("beam.pdf", "blob:x"))
        assert await coord.load() == "cache"


class TestCreate:
    @pytest.mark.asyncio
    async def test_small_drag_discarded(self, store, cache, notices):
        coord = make(store, cache, notices)
        await coord.load()
        store.calls.clear()
        result = await coord.create_annotation(rect(width=5, height=5), "tiny")
        assert result is None
        assert coord.annotations == []
        assert store.calls == []
        assert cache.get(annotations_key(42)) is None

    @pytest.mark.asyncio
    async def test_min_drag_scales_with_zoom(self, store, cache, notices):
        coord = make(store, cache, notices, scale=4.0)
        await coord.load()
        result = await coord.create_annotation(rect(width=5, height=5))
        assert result.phase == SavePhase.CONFIRMED

    @pytest.mark.asyncio
    async def test_confirmed_replaces_local_id(self, store, cache, notices):
        coord = make(store, cache, notices)
        await coord.load()
        result = await coord.create_annotation(rect(page=2), "check tolerance")
        assert result.phase == SavePhase.CONFIRMED
        assert result.local_id.startswith("local_")
        assert result.server_id == 100
        [entry] = coord.annotations
        assert entry.id == 100
        assert entry.pdf_version_id == 2
        assert entry.color == STATUS_COLORS[AnnotationStatus.NEW_COMMENT]
        assert store.annotations[100]["rect"]["pageNumber"] == 2

    @pytest.mark.asyncio
    async def test_local_id_still_addresses_confirmed_entry(self, store, cache, notices):
        coord = make(store, cache, notices)
        await coord.load()
        result = await coord.create_annotation(rect(), "a")
        update = await coord.update_comment(result.local_id, "b")
        assert update.phase == SavePhase.CONFIRMED
        assert store.annotations[100]["comment"] == "b"

    @pytest.mark.asyncio
    async def test_store_failure_writes_cache(self, store, cache, notices):
        coord = make(store, cache, notices)
        await coord.load()
        store.down = True
        result = await coord.create_annotation(rect(), "offline")
        assert result.phase == SavePhase.CACHED
        assert isinstance(result.error, StoreUnavailable)
        assert cache.get(annotations_key(42)) == [a.to_cache() for a in coord.annotations]
        assert notices == []

    @pytest.mark.asyncio
    async def test_fallback_write_is_whole_list(self, store, cache, notices):
        coord = make(store, cache, notices, file_ref="offline-ref", raw_file=RawFile("a.pdf", "blob:a"))
        await coord.load()
        await coord.create_annotation(rect(), "one")
        await coord.create_annotation(rect(x=100), "two")
        cached = cache.get(annotations_key("offline-ref"))
        assert [a["comment"] for a in cached] == ["one", "two"]
        assert cached == [a.to_cache() for a in coord.annotations]

    @pytest.mark.asyncio
    async def test_both_fail_notifies_and_keeps_memory(self, store, notices):
        cache = MemoryFallbackCache(max_bytes=10)
        coord = make(store, cache, notices)
        await coord.load()
        store.down = True
        result = await coord.create_annotation(rect(), "lost on reload")
        assert result.phase == SavePhase.FAILED
        assert not result.persisted
        assert notices == [SAVE_FAILED_MESSAGE]
        assert [a.comment for a in coord.annotations] == ["lost on reload"]

    @pytest.mark.asyncio
    async def test_synthesized_version_stays_local(self, store, cache, notices):
        store.down = True
        coord = make(store, cache, notices, raw_file=RawFile("beam.pdf", "blob:x"))
        await coord.load()
        store.down = False
        store.calls.clear()
        result = await coord.create_annotation(rect())
        assert result.phase == SavePhase.CACHED
        assert "create_annotation" not in store.calls


class TestUpdate:
    @pytest_asyncio.fixture
    async def loaded(self, store, cache, notices):
        store.annotations = {5: stored_annotation(5, 2)}
        coord = make(store, cache, notices)
        await coord.load()
        return coord

    @pytest.mark.asyncio
    async def test_status_resets_color(self, store, loaded):
        result = await loaded.update_status(5, "resolved")
        assert result.phase == SavePhase.CONFIRMED
        assert loaded.annotations[0].color == STATUS_COLORS[AnnotationStatus.RESOLVED]
        assert store.annotations[5]["status"] == "resolved"
        assert store.annotations[5]["color"] == STATUS_COLORS[AnnotationStatus.RESOLVED]

    @pytest.mark.asyncio
    async def test_explicit_color_wins(self, store, loaded):
        await loaded.update_status(5, "in_review", color="#000000")
        assert loaded.annotations[0].color == "#000000"

    @pytest.mark.asyncio
    async def test_assignment(self, store, loaded):
        await loaded.update_assignment(5, "  ana ", "2026-05-01")
        entry = loaded.annotations[0]
        assert entry.assigned_to == "ana"
        assert entry.deadline.isoformat() == "2026-05-01"
        assert store.annotations[5]["deadline"] == "2026-05-01"

    @pytest.mark.asyncio
    async def test_updates_on_one_annotation_apply_in_order(self, store, loaded):
        store.update_delays = [0.05, 0]
        await asyncio.gather(
            loaded.update_status(5, "in_review"),
            loaded.update_status(5, "resolved"),
        )
        assert store.annotations[5]["status"] == "resolved"
        assert loaded.annotations[0].status == AnnotationStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_outage_caches_update(self, store, cache, loaded):
        store.down = True
        result = await loaded.update_comment(5, "offline edit")
        assert result.phase == SavePhase.CACHED
        assert cache.get(annotations_key(42))[0]["comment"] == "offline edit"

    @pytest.mark.asyncio
    async def test_unknown_annotation(self, loaded):
        with pytest.raises(NotFound):
            await loaded.update_comment(999, "x")


class TestDeleteAndPromote:
    @pytest_asyncio.fixture
    async def loaded(self, store, cache, notices):
        store.annotations = {5: stored_annotation(5, 2)}
        coord = make(store, cache, notices)
        await coord.load()
        return coord

    @pytest.mark.asyncio
    async def test_delete(self, store, loaded):
        result = await loaded.delete_annotation(5)
        assert result.phase == SavePhase.CONFIRMED
        assert loaded.annotations == []
        assert store.annotations == {}

    @pytest.mark.asyncio
    async def test_delete_already_gone_on_server(self, store, loaded):
        store.annotations = {}
        result = await loaded.delete_annotation(5)
        assert result.phase == SavePhase.CONFIRMED
        assert loaded.annotations == []

    @pytest.mark.asyncio
    async def test_delete_during_outage(self, store, cache, loaded):
        store.down = True
        result = await loaded.delete_annotation(5)
        assert result.phase == SavePhase.CACHED
        assert cache.get(annotations_key(42)) == []

    @pytest.mark.asyncio
    async def test_promote(self, store, loaded):
        task = await loaded.promote_to_task(5)
        assert task["id"] == 905
        assert loaded.annotations[0].task_id == 905

    @pytest.mark.asyncio
    async def test_promote_local_annotation(self, store, loaded):
        store.down = True
        result = await loaded.create_annotation(rect(), "offline")
        store.down = False
        assert await loaded.promote_to_task(result.local_id) is None

    @pytest.mark.asyncio
    async def test_promote_failure(self, store, loaded):
        store.down = True
        assert await loaded.promote_to_task(5) is None
        assert loaded.annotations[0].task_id is None


class TestAddVersion:
    @pytest.mark.asyncio
    async def test_add_version_becomes_active(self, store, cache, notices):
        coord = make(store, cache, notices)
        await coord.load()
        result = await coord.add_version(b"%PDF-1.4 new", "beam_rev3.pdf", "rev 3")
        assert result.phase == SavePhase.CONFIRMED
        assert coord.current_version.version_number == 3
        assert coord.active_version_id == result.server_id
        assert coord.visible_annotations == []

    @pytest.mark.asyncio
    async def test_add_version_offline(self, store, cache, notices):
        store.down = True
        coord = make(store, cache, notices, raw_file=RawFile("beam.pdf", "blob:1"))
        await coord.load()
        result = await coord.add_version(b"%PDF-1.4 new", "beam.pdf", file_url="blob:2")
        assert result.phase == SavePhase.CACHED
        cached = cache.get(versions_key(42))
        assert [v["versionNumber"] for v in cached] == [1, 2]
        assert coord.pdf_url == "blob:2"


class TestOfflineReload:
    @pytest.mark.asyncio
    async def test_annotation_made_offline_is_visible_after_reload(self, store, cache, notices):
        coord = make(store, cache, notices)
        await coord.load()
        store.down = True
        result = await coord.create_annotation(rect(), "made offline")
        assert result.phase == SavePhase.CACHED

        reloaded = make(store, cache, notices)
        assert await reloaded.load() == "cache"
        assert reloaded.active_version_id == 2
        assert [a.comment for a in reloaded.visible_annotations] == ["made offline"]

    @pytest.mark.asyncio
    async def test_cached_versions_not_overwritten(self, store, cache, notices):
        cache.put(versions_key(42), [{"id": 1, "versionNumber": 1, "filename": "old.pdf"}])
        coord = make(store, cache, notices)
        await coord.load()
        store.down = True
        await coord.create_annotation(rect(), "offline")
        assert [v["filename"] for v in cache.get(versions_key(42))] == ["old.pdf"]


class TestSavePhase:
    @pytest.mark.asyncio
    async def test_pending_while_store_call_in_flight(self, store, cache, notices):
        coord = make(store, cache, notices)
        await coord.load()
        started = asyncio.Event()
        release = asyncio.Event()
        original = store.create_annotation

        async def slow_create(data):
            started.set()
            await release.wait()
            return await original(data)

        store.create_annotation = slow_create
        task = asyncio.ensure_future(coord.create_annotation(rect(), "slow"))
        await started.wait()
        local_id = coord.annotations[0].id
        assert coord.save_phase(local_id) == SavePhase.PENDING

        release.set()
        result = await task
        assert coord.save_phase(local_id) == SavePhase.CONFIRMED
        assert coord.save_phase(result.server_id) == SavePhase.CONFIRMED

    @pytest.mark.asyncio
    async def test_phase_follows_outcome(self, store, cache, notices):
        store.annotations = {5: stored_annotation(5, 2)}
        coord = make(store, cache, notices)
        await coord.load()
        assert coord.save_phase(5) is None

        store.down = True
        await coord.update_comment(5, "offline")
        assert coord.save_phase(5) == SavePhase.CACHED

        await coord.delete_annotation(5)
        assert coord.save_phase(5) is None


class TestFromSettings:
    def test_wires_http_store_and_file_cache(self, tmp_path):
        settings = Settings(
            store_base_url="http://vault.test",
            store_timeout_seconds=2.5,
            fallback_cache_dir=str(tmp_path / "fallback"),
        )
        coord = SyncCoordinator.from_settings("42", settings, user=7)
        assert isinstance(coord.store, HttpStoreClient)
        assert isinstance(coord.cache, JsonFileFallbackCache)
        assert coord.cache.directory == tmp_path / "fallback"
        assert coord.timeout == 2.5
