"""
Unit tests for FileLifecycleManager.

Run against a real (in-memory SQLite) metadata store and the in-memory object
store double, so every test observes both sides of each operation.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from guptify.core.errors import (
    MetadataWriteError,
    NotFound,
    StorageReadError,
    StorageWriteError,
    UploadRejected,
    ValidationError,
)
from guptify.models.file import File
from guptify.models.file_share import FileShare
from guptify.models.folder import Folder
from guptify.services import file_service
from guptify.services.file_service import (
    BYTES_PER_MB,
    FileLifecycleManager,
    SearchFilters,
    preview_kind,
)

OWNER = "owner-1"
OTHER = "owner-2"


@pytest.fixture
def manager(db_session, store, clock):
    return FileLifecycleManager(db_session, store, clock)


async def _count_files(db_session) -> int:
    return (await db_session.execute(select(func.count()).select_from(File))).scalar_one()


class TestUpload:
    async def test_upload_writes_blob_and_record(self, manager, store):
        f = await manager.upload(OWNER, b"0123456789", "a.txt", "text/plain")

        assert f.name == "a.txt"
        assert f.size == 10
        assert f.type == "text/plain"
        assert f.user_id == OWNER
        assert f.is_deleted is False
        assert f.folder_id is None
        assert f.path.startswith(f"uploads/{OWNER}/")
        assert f.path.endswith(".txt")
        assert f.public_url == store.public_url(f.path)
        assert store.objects[f.path]["data"] == b"0123456789"

    async def test_same_name_twice_gets_distinct_paths(self, manager, store):
        first = await manager.upload(OWNER, b"one", "report.pdf", "application/pdf")
        second = await manager.upload(OWNER, b"two", "report.pdf", "application/pdf")

        assert first.path != second.path
        assert store.objects[first.path]["data"] == b"one"
        assert store.objects[second.path]["data"] == b"two"

    async def test_missing_content_is_rejected(self, manager, store, db_session):
        with pytest.raises(UploadRejected):
            await manager.upload(OWNER, None, "a.txt", "text/plain")
        assert store.objects == {}
        assert await _count_files(db_session) == 0

    async def test_missing_mime_type_defaults_to_octet_stream(self, manager):
        f = await manager.upload(OWNER, b"\x00\x01", "blob", None)
        assert f.type == "application/octet-stream"

    async def test_storage_failure_creates_no_record(self, manager, store, db_session):
        store.fail_uploads = True
        with pytest.raises(StorageWriteError):
            await manager.upload(OWNER, b"data", "a.txt", "text/plain")
        assert await _count_files(db_session) == 0

    async def test_metadata_failure_leaves_blob_in_place(self, manager, store, db_session, monkeypatch):
        taken = await manager.upload(OWNER, b"first", "a.txt", "text/plain")
        # Force the next upload onto a fresh blob path whose row insert collides.
        store.objects.pop(taken.path)
        monkeypatch.setattr(file_service, "build_storage_path", lambda owner, name: taken.path)

        with pytest.raises(MetadataWriteError):
            await manager.upload(OWNER, b"second", "a.txt", "text/plain")

        assert store.objects[taken.path]["data"] == b"second"
        assert await _count_files(db_session) == 1

    async def test_target_folder_must_be_owned_and_live(self, manager, store, db_session):
        theirs = Folder(user_id=OTHER, name="Theirs")
        gone = Folder(user_id=OWNER, name="Old", is_deleted=True)
        mine = Folder(user_id=OWNER, name="Mine")
        db_session.add_all([theirs, gone, mine])
        await db_session.commit()

        for folder_id in (theirs.id, gone.id, "no-such-folder"):
            with pytest.raises(NotFound):
                await manager.upload(OWNER, b"data", "a.txt", "text/plain", folder_id)
        assert store.objects == {}
        assert await _count_files(db_session) == 0

        f = await manager.upload(OWNER, b"data", "a.txt", "text/plain", mine.id)
        assert f.folder_id == mine.id


class TestList:
    async def test_newest_first_with_total(self, manager):
        for i in range(5):
            await manager.upload(OWNER, b"x" * (i + 1), f"f{i}.txt", "text/plain")

        items, total = await manager.list_files(OWNER, page=1, page_size=2)
        assert total == 5
        assert [f.name for f in items] == ["f4.txt", "f3.txt"]

        items, _ = await manager.list_files(OWNER, page=3, page_size=2)
        assert [f.name for f in items] == ["f0.txt"]

        items, total = await manager.list_files(OWNER, page=4, page_size=2)
        assert items == []
        assert total == 5

    async def test_excludes_other_owners_and_trashed(self, manager):
        mine = await manager.upload(OWNER, b"a", "mine.txt", "text/plain")
        trashed = await manager.upload(OWNER, b"b", "gone.txt", "text/plain")
        await manager.upload(OTHER, b"c", "theirs.txt", "text/plain")
        await manager.trash(OWNER, trashed.id)

        items, total = await manager.list_files(OWNER, 1, 20)
        assert total == 1
        assert [f.id for f in items] == [mine.id]
        assert all(f.user_id == OWNER and not f.is_deleted for f in items)

    async def test_folder_filter(self, manager):
        root_file = await manager.upload(OWNER, b"a", "root.txt", "text/plain")
        in_folder = await manager.upload(OWNER, b"b", "nested.txt", "text/plain", folder_id="folder-1")
        await manager.upload(OWNER, b"c", "elsewhere.txt", "text/plain", folder_id="folder-2")

        items, total = await manager.list_files(OWNER, 1, 20, "root")
        assert [f.id for f in items] == [root_file.id]
        assert total == 1

        items, _ = await manager.list_files(OWNER, 1, 20, "folder-1")
        assert [f.id for f in items] == [in_folder.id]

        _, total = await manager.list_files(OWNER, 1, 20, None)
        assert total == 3

    async def test_rejects_non_positive_page(self, manager):
        with pytest.raises(ValidationError):
            await manager.list_files(OWNER, 0, 20)


class TestSearch:
    @pytest.fixture
    async def catalog(self, manager):
        files = {}
        files["photo"] = await manager.upload(OWNER, b"x" * 10, "Holiday Photo.png", "image/png")
        files["big_photo"] = await manager.upload(OWNER, b"x" * (2 * BYTES_PER_MB), "holiday-raw.jpg", "image/jpeg")
        files["pdf"] = await manager.upload(OWNER, b"x" * 20, "holiday-plan.pdf", "application/pdf")
        files["docx"] = await manager.upload(
            OWNER,
            b"x" * 30,
            "holiday-budget.docx",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )
        files["xls"] = await manager.upload(OWNER, b"x" * 30, "holiday.xls", "application/vnd.ms-excel")
        files["video"] = await manager.upload(OWNER, b"x" * 40, "holiday.mp4", "video/mp4")
        files["audio"] = await manager.upload(OWNER, b"x" * 40, "holiday.mp3", "audio/mpeg")
        files["notes"] = await manager.upload(OWNER, b"x" * 5, "notes.txt", "text/plain")
        await manager.upload(OTHER, b"x", "holiday-other.png", "image/png")
        return files

    async def test_query_is_required(self, manager):
        with pytest.raises(ValidationError):
            await manager.search(OWNER, None)
        with pytest.raises(ValidationError):
            await manager.search(OWNER, "   ")

    async def test_case_insensitive_substring(self, manager, catalog):
        results = await manager.search(OWNER, "HOLIDAY")
        assert {f.id for f in results} == {f.id for k, f in catalog.items() if k != "notes"}

    @pytest.mark.parametrize(
        "kind,expected",
        [
            ("image", {"photo", "big_photo"}),
            ("pdf", {"pdf"}),
            ("document", {"docx", "xls"}),
            ("video", {"video"}),
            ("audio", {"audio"}),
        ],
    )
    async def test_type_filters(self, manager, catalog, kind, expected):
        results = await manager.search(OWNER, "holiday", SearchFilters(type=kind))
        assert {f.id for f in results} == {catalog[k].id for k in expected}

    async def test_image_filter_matches_prefix_only(self, manager, catalog):
        results = await manager.search(OWNER, "holiday", SearchFilters(type="image"))
        assert all(f.type.startswith("image/") for f in results)

    async def test_size_bounds_are_megabytes(self, manager, catalog):
        results = await manager.search(OWNER, "holiday", SearchFilters(size_min=1))
        assert [f.id for f in results] == [catalog["big_photo"].id]
        assert all(f.size >= 1_048_576 for f in results)

        results = await manager.search(OWNER, "holiday", SearchFilters(size_max=1))
        assert catalog["big_photo"].id not in {f.id for f in results}

    async def test_filters_combine(self, manager, catalog):
        results = await manager.search(OWNER, "raw", SearchFilters(type="image", size_min=1))
        assert [f.id for f in results] == [catalog["big_photo"].id]

        results = await manager.search(OWNER, "plan", SearchFilters(type="image"))
        assert results == []

    async def test_date_range_is_inclusive(self, manager, clock):
        clock.now = clock.now.replace(year=2025, month=3, day=10, hour=8)
        march = await manager.upload(OWNER, b"a", "log-march.txt", "text/plain")
        clock.advance(timedelta(days=30).total_seconds())
        april = await manager.upload(OWNER, b"b", "log-april.txt", "text/plain")

        results = await manager.search(OWNER, "log", SearchFilters(date_to="2025-03-10"))
        assert [f.id for f in results] == [march.id]

        results = await manager.search(OWNER, "log", SearchFilters(date_from="2025-04-01"))
        assert [f.id for f in results] == [april.id]

        results = await manager.search(
            OWNER, "log", SearchFilters(date_from=march.created_at.isoformat(), date_to=april.created_at.isoformat())
        )
        assert {f.id for f in results} == {march.id, april.id}

    async def test_utc_designator_is_accepted(self, manager, clock):
        clock.now = clock.now.replace(year=2025, month=3, day=10, hour=8)
        march = await manager.upload(OWNER, b"a", "log-march.txt", "text/plain")

        results = await manager.search(OWNER, "log", SearchFilters(date_from="2025-03-10T07:00:00Z"))
        assert [f.id for f in results] == [march.id]
        results = await manager.search(OWNER, "log", SearchFilters(date_to="2025-03-10T07:00:00.000Z"))
        assert results == []

    async def test_invalid_date(self, manager):
        with pytest.raises(ValidationError):
            await manager.search(OWNER, "x", SearchFilters(date_from="yesterday"))

    async def test_wildcards_are_literal(self, manager):
        await manager.upload(OWNER, b"a", "100% done.txt", "text/plain")
        await manager.upload(OWNER, b"b", "1000 done.txt", "text/plain")

        results = await manager.search(OWNER, "100%")
        assert [f.name for f in results] == ["100% done.txt"]

    async def test_trashed_files_are_not_found(self, manager):
        f = await manager.upload(OWNER, b"a", "secret.txt", "text/plain")
        await manager.trash(OWNER, f.id)
        assert await manager.search(OWNER, "secret") == []


class TestTrashRestore:
    async def test_round_trip(self, manager):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")

        trashed = await manager.trash(OWNER, f.id)
        assert trashed.is_deleted is True
        assert [t.id for t in await manager.list_trash(OWNER)] == [f.id]

        restored = await manager.restore(OWNER, f.id)
        assert restored.is_deleted is False
        assert await manager.list_trash(OWNER) == []

    async def test_trash_is_idempotent(self, manager):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        await manager.trash(OWNER, f.id)
        again = await manager.trash(OWNER, f.id)
        assert again.is_deleted is True

    async def test_restore_active_file_is_noop(self, manager):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        restored = await manager.restore(OWNER, f.id)
        assert restored.is_deleted is False

    async def test_other_owner_gets_not_found(self, manager):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        with pytest.raises(NotFound):
            await manager.trash(OTHER, f.id)
        with pytest.raises(NotFound):
            await manager.restore(OTHER, f.id)
        with pytest.raises(NotFound):
            await manager.trash(OWNER, "does-not-exist")

        items, _ = await manager.list_files(OWNER, 1, 20)
        assert [i.id for i in items] == [f.id]

    async def test_trash_orders_by_last_update(self, manager):
        first = await manager.upload(OWNER, b"a", "first.txt", "text/plain")
        second = await manager.upload(OWNER, b"b", "second.txt", "text/plain")
        await manager.trash(OWNER, second.id)
        await manager.trash(OWNER, first.id)

        assert [f.id for f in await manager.list_trash(OWNER)] == [first.id, second.id]


class TestPermanentDelete:
    async def test_removes_blob_and_row(self, manager, store, db_session):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        await manager.permanently_delete(OWNER, f.id)

        assert f.path not in store.objects
        assert await _count_files(db_session) == 0

    async def test_works_for_trashed_files(self, manager, db_session):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        await manager.trash(OWNER, f.id)
        await manager.permanently_delete(OWNER, f.id)
        assert await _count_files(db_session) == 0

    async def test_blob_failure_does_not_block_row_deletion(self, manager, store, db_session):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        store.fail_removals = True

        await manager.permanently_delete(OWNER, f.id)

        assert f.path in store.objects
        assert await _count_files(db_session) == 0

    async def test_unknown_or_foreign_id_leaves_store_unchanged(self, manager, store, db_session):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")

        with pytest.raises(NotFound):
            await manager.permanently_delete(OTHER, f.id)
        with pytest.raises(NotFound):
            await manager.permanently_delete(OWNER, "missing")

        assert f.path in store.objects
        assert store.removed == []
        assert await _count_files(db_session) == 1

    async def test_share_rows_go_with_the_file(self, manager, db_session, clock):
        f = await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        db_session.add(FileShare(file_id=f.id, created_by=OWNER, token="a" * 32, expires_at=clock.now))
        await db_session.commit()

        await manager.permanently_delete(OWNER, f.id)

        remaining = (await db_session.execute(select(func.count()).select_from(FileShare))).scalar_one()
        assert remaining == 0


class TestEmptyTrash:
    async def test_deletes_only_trashed_files_of_owner(self, manager, store, db_session):
        keep = await manager.upload(OWNER, b"a", "keep.txt", "text/plain")
        t1 = await manager.upload(OWNER, b"b", "t1.txt", "text/plain")
        t2 = await manager.upload(OWNER, b"c", "t2.txt", "text/plain")
        foreign = await manager.upload(OTHER, b"d", "foreign.txt", "text/plain")
        await manager.trash(OWNER, t1.id)
        await manager.trash(OWNER, t2.id)
        await manager.trash(OTHER, foreign.id)

        count = await manager.empty_trash(OWNER)

        assert count == 2
        assert set(store.removed) == {t1.path, t2.path}
        assert await manager.list_trash(OWNER) == []
        assert [f.id for f in await manager.list_trash(OTHER)] == [foreign.id]
        items, _ = await manager.list_files(OWNER, 1, 20)
        assert [f.id for f in items] == [keep.id]

    async def test_empty_trash_with_nothing_trashed(self, manager):
        await manager.upload(OWNER, b"a", "a.txt", "text/plain")
        assert await manager.empty_trash(OWNER) == 0

    async def test_storage_failures_still_clear_rows_and_report_listed_count(self, manager, store):
        t1 = await manager.upload(OWNER, b"b", "t1.txt", "text/plain")
        t2 = await manager.upload(OWNER, b"c", "t2.txt", "text/plain")
        await manager.trash(OWNER, t1.id)
        await manager.trash(OWNER, t2.id)
        store.fail_removals = True

        assert await manager.empty_trash(OWNER) == 2
        assert await manager.list_trash(OWNER) == []
        assert t1.path in store.objects and t2.path in store.objects

    async def test_file_restored_after_listing_keeps_row_and_shares(self, manager, db_session, monkeypatch):
        trashed = await manager.upload(OWNER, b"a", "t.txt", "text/plain")
        restored = await manager.upload(OWNER, b"b", "r.txt", "text/plain")
        await manager.trash(OWNER, trashed.id)
        for f in (trashed, restored):
            db_session.add(FileShare(file_id=f.id, created_by=OWNER, token=f.id.replace("-", ""), expires_at=f.created_at))
        await db_session.commit()

        listed = [trashed, restored]

        async def stale_listing(owner_id):
            return listed

        monkeypatch.setattr(manager, "list_trash", stale_listing)

        assert await manager.empty_trash(OWNER) == 2

        items, _ = await manager.list_files(OWNER, 1, 20)
        assert [f.id for f in items] == [restored.id]
        shares = (await db_session.execute(select(FileShare.file_id))).scalars().all()
        assert shares == [restored.id]


class TestPreview:
    @pytest.mark.parametrize(
        "content_type,kind",
        [
            ("image/png", "image"),
            ("image/svg+xml", "image"),
            ("application/pdf", "pdf"),
            ("text/plain", "text"),
            ("text/csv", "text"),
            ("application/json", "text"),
            ("application/javascript", "text"),
            ("application/zip", "other"),
            ("", "other"),
            (None, "other"),
        ],
    )
    def test_preview_kind(self, content_type, kind):
        assert preview_kind(content_type) == kind

    async def test_preview_returns_short_lived_url(self, manager):
        f = await manager.upload(OWNER, b"{}", "data.json", "application/json")
        url, kind, name = await manager.preview(OWNER, f.id)

        assert f.path in url
        assert "X-Amz-Expires=60" in url
        assert kind == "text"
        assert name == "data.json"

    async def test_preview_of_trashed_file_still_works(self, manager):
        f = await manager.upload(OWNER, b"x", "pic.png", "image/png")
        await manager.trash(OWNER, f.id)
        _, kind, _ = await manager.preview(OWNER, f.id)
        assert kind == "image"

    async def test_preview_not_found_and_signing_failure(self, manager, store):
        f = await manager.upload(OWNER, b"x", "pic.png", "image/png")
        with pytest.raises(NotFound):
            await manager.preview(OTHER, f.id)

        store.fail_signing = True
        with pytest.raises(StorageReadError):
            await manager.preview(OWNER, f.id)


class TestRegisterMetadata:
    async def test_registers_existing_blob(self, manager, store):
        path = f"uploads/{OWNER}/direct-upload.bin"
        store.put_raw(path, b"12345")

        f = await manager.register_metadata(OWNER, "direct.bin", 5, "application/octet-stream", path)
        assert f.path == path
        assert f.public_url == store.public_url(path)

        with pytest.raises(MetadataWriteError):
            await manager.register_metadata(OWNER, "again.bin", 5, "application/octet-stream", path)

    async def test_path_must_belong_to_owner_and_exist(self, manager, store):
        store.put_raw(f"uploads/{OTHER}/theirs.bin", b"1")
        with pytest.raises(ValidationError):
            await manager.register_metadata(OWNER, "x", 1, "text/plain", f"uploads/{OTHER}/theirs.bin")
        with pytest.raises(ValidationError):
            await manager.register_metadata(OWNER, "x", 1, "text/plain", f"uploads/{OWNER}/missing.bin")
        with pytest.raises(ValidationError):
            await manager.register_metadata(OWNER, "x", 1, "text/plain", f"uploads/{OWNER}/../{OTHER}/theirs.bin")

    async def test_folder_must_belong_to_owner(self, manager, store, db_session):
        theirs = Folder(user_id=OTHER, name="Theirs")
        db_session.add(theirs)
        await db_session.commit()
        path = f"uploads/{OWNER}/direct.bin"
        store.put_raw(path, b"1")

        with pytest.raises(NotFound):
            await manager.register_metadata(OWNER, "direct.bin", 1, "text/plain", path, theirs.id)
        assert await _count_files(db_session) == 0
