"""Unit tests for the IngestionService: per-unit chunk, embed and write."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from bookrag.models.rag import (
    CollectionSpec,
    CollectionStatus,
    Document,
    IngestionState,
    Unit,
    UnitOutcome,
)
from bookrag.services.ingestion.chunker import TextChunker
from bookrag.services.ingestion.embedder import Embedder
from bookrag.services.ingestion.ingestion_service import IngestionService
from bookrag.utils.errors import IngestionUnitError, StoreWriteError
from tests.conftest import MockEmbeddingProvider, MockVectorStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_service(
    store: MockVectorStore,
    provider: MockEmbeddingProvider | None = None,
    chunk_size: int = 500,
    overlap: int = 50,
    **kwargs,
) -> IngestionService:
    provider = provider or MockEmbeddingProvider()
    return IngestionService(
        chunker=TextChunker(chunk_size, overlap),
        embedder=Embedder(provider),
        vector_store=store,
        collection=CollectionSpec(name="books", dimension=provider.get_dimension()),
        **kwargs,
    )


def _document(*texts: str) -> Document:
    return Document(
        document_id="doc",
        name="Book",
        units=tuple(Unit(unit_index=i, text=t) for i, t in enumerate(texts, start=1)),
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_dimension_mismatch_rejected(self) -> None:
        with pytest.raises(ValueError, match="dimension"):
            IngestionService(
                chunker=TextChunker(),
                embedder=Embedder(MockEmbeddingProvider(dim=64)),
                vector_store=MockVectorStore(),
                collection=CollectionSpec(name="books", dimension=128),
            )

    def test_unknown_write_mode_rejected(self) -> None:
        with pytest.raises(ValueError, match="write_mode"):
            _make_service(MockVectorStore(), write_mode="replace")

    def test_starts_idle(self) -> None:
        assert _make_service(MockVectorStore()).state == IngestionState.IDLE


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestIngestDocument:
    @pytest.mark.asyncio
    async def test_every_unit_written_in_order(
        self, sample_document: Document, vector_store: MockVectorStore
    ) -> None:
        service = _make_service(vector_store, chunk_size=120, overlap=20)

        report = await service.ingest_document(sample_document)

        assert report.state == IngestionState.COMPLETED
        assert service.state == IngestionState.COMPLETED
        assert [o.unit_index for o in report.units] == [1, 2, 3]
        assert all(o.status == "written" for o in report.units)
        assert report.total_inserted == report.total_chunks
        assert report.total_inserted == await vector_store.count("books")
        # Unit N's write finishes before unit N+1 starts.
        written_units = [int(ids[0].split("_")[1]) for _, ids in vector_store.write_calls]
        assert written_units == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_store_prepared_once_with_statuses(self, vector_store: MockVectorStore) -> None:
        service = _make_service(vector_store)
        with capture_logs() as logs:
            await service.ingest_document(_document("First text."))
            await service.ingest_document(_document("First text."))

        ready = [log for log in logs if log["event"] == "collection_ready"]
        assert ready[0]["status"] == CollectionStatus.CREATED.value
        assert ready[0]["load_status"] == CollectionStatus.LOADED.value
        assert ready[1]["status"] == CollectionStatus.ALREADY_EXISTS.value
        assert ready[1]["load_status"] == CollectionStatus.ALREADY_LOADED.value

    @pytest.mark.asyncio
    async def test_empty_unit_skipped(self, vector_store: MockVectorStore) -> None:
        service = _make_service(vector_store)

        report = await service.ingest_document(_document("Alpha text.", "   ", "Gamma text."))

        statuses = [(o.unit_index, o.status, o.inserted_count) for o in report.units]
        assert statuses == [(1, "written", 1), (2, "skipped", 0), (3, "written", 1)]
        assert report.total_inserted == 2
        assert report.state == IngestionState.COMPLETED

    @pytest.mark.asyncio
    async def test_on_unit_callback_receives_each_outcome(
        self, sample_document: Document, vector_store: MockVectorStore
    ) -> None:
        seen: list[UnitOutcome] = []
        service = _make_service(vector_store)

        await service.ingest_document(sample_document, on_unit=seen.append)

        assert [o.unit_index for o in seen] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_record_ids_are_composite(self, vector_store: MockVectorStore) -> None:
        service = _make_service(vector_store)

        await service.ingest_document(_document("One.", "Two."))

        assert set(vector_store.collections["books"]) == {"doc_1_0", "doc_2_0"}


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestUnitFailure:
    @pytest.mark.asyncio
    async def test_embedding_failure_names_the_unit(self, vector_store: MockVectorStore) -> None:
        provider = MockEmbeddingProvider(fail_on={"POISON"})
        service = _make_service(vector_store, provider)
        document = _document("Fine text.", "Some POISON text.", "Never reached.")

        with pytest.raises(IngestionUnitError) as exc_info:
            await service.ingest_document(document)

        err = exc_info.value
        assert err.unit_index == 2
        assert err.report is not None
        assert err.report.state == IngestionState.FAILED
        assert err.report.failed_unit == 2
        assert err.report.total_inserted == 1
        assert err.provider_name == "mock-embedding"
        assert service.state == IngestionState.FAILED
        # Unit 1 stays committed; nothing of unit 2 or 3 was written.
        assert set(vector_store.collections["books"]) == {"doc_1_0"}

    @pytest.mark.asyncio
    async def test_partial_batch_never_written(self, vector_store: MockVectorStore) -> None:
        provider = MockEmbeddingProvider(fail_on={"POISON"})
        service = _make_service(vector_store, provider, chunk_size=40, overlap=5)
        long_unit = "clean words here and there. " * 5 + "POISON at the end."

        with pytest.raises(IngestionUnitError):
            await service.ingest_document(_document(long_unit))

        assert vector_store.write_calls == []

    @pytest.mark.asyncio
    async def test_write_error_fails_unit(self, vector_store: MockVectorStore) -> None:
        service = _make_service(vector_store)
        vector_store.insert = AsyncMock(side_effect=StoreWriteError("disk full", "mock-store"))

        with pytest.raises(IngestionUnitError) as exc_info:
            await service.ingest_document(_document("Text."))

        assert exc_info.value.unit_index == 1
        assert isinstance(exc_info.value.__cause__, StoreWriteError)

    @pytest.mark.asyncio
    async def test_store_preparation_failure_propagates(
        self, vector_store: MockVectorStore
    ) -> None:
        service = _make_service(vector_store)
        vector_store.ensure_collection = AsyncMock(side_effect=StoreWriteError("schema clash"))

        with pytest.raises(StoreWriteError):
            await service.ingest_document(_document("Text."))

        assert service.state == IngestionState.FAILED


# ---------------------------------------------------------------------------
# Write counts and modes
# ---------------------------------------------------------------------------


class TestWriteCounts:
    @pytest.mark.asyncio
    async def test_count_mismatch_is_warned(self, vector_store: MockVectorStore) -> None:
        vector_store.short_count = 0
        service = _make_service(vector_store)

        with capture_logs() as logs:
            report = await service.ingest_document(_document("Text."))

        assert report.units[0].count_mismatch is True
        assert report.total_inserted == 0
        warnings = [log for log in logs if log["event"] == "write_count_mismatch"]
        assert warnings and warnings[0]["log_level"] == "warning"
        assert warnings[0]["expected"] == 1

    @pytest.mark.asyncio
    async def test_count_mismatch_fails_when_strict(self, vector_store: MockVectorStore) -> None:
        vector_store.short_count = 0
        service = _make_service(vector_store, strict_write_counts=True)

        with pytest.raises(IngestionUnitError) as exc_info:
            await service.ingest_document(_document("Text."))

        assert isinstance(exc_info.value.__cause__, StoreWriteError)

    @pytest.mark.asyncio
    async def test_reingest_with_insert_reports_duplicates(
        self, vector_store: MockVectorStore
    ) -> None:
        service = _make_service(vector_store)
        await service.ingest_document(_document("Text."))

        report = await service.ingest_document(_document("Text."))

        assert report.total_inserted == 0
        assert report.units[0].count_mismatch is True

    @pytest.mark.asyncio
    async def test_upsert_mode_overwrites(self, vector_store: MockVectorStore) -> None:
        service = _make_service(vector_store, write_mode="upsert")
        await service.ingest_document(_document("Text."))

        report = await service.ingest_document(_document("Text."))

        assert report.total_inserted == 1
        assert await vector_store.count("books") == 1
        assert [mode for mode, _ in vector_store.write_calls] == ["upsert", "upsert"]


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_event_stops_before_next_unit(
        self, sample_document: Document, vector_store: MockVectorStore
    ) -> None:
        cancel = asyncio.Event()
        service = _make_service(vector_store)

        def _cancel_after_first(outcome: UnitOutcome) -> None:
            if outcome.unit_index == 1:
                cancel.set()

        report = await service.ingest_document(
            sample_document, cancel_event=cancel, on_unit=_cancel_after_first
        )

        assert report.state == IngestionState.CANCELLED
        assert service.state == IngestionState.CANCELLED
        assert [o.unit_index for o in report.units] == [1]
        assert await vector_store.count("books") == 1

    @pytest.mark.asyncio
    async def test_task_cancel_lets_write_finish(self, vector_store: MockVectorStore) -> None:
        started = asyncio.Event()
        original_insert = vector_store.insert

        async def slow_insert(collection, records):
            started.set()
            await asyncio.sleep(0.05)
            return await original_insert(collection, records)

        vector_store.insert = slow_insert
        service = _make_service(vector_store)
        task = asyncio.create_task(service.ingest_document(_document("One.", "Two.")))

        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert set(vector_store.collections["books"]) == {"doc_1_0"}
        assert service.state == IngestionState.CANCELLED


# ---------------------------------------------------------------------------
# Files and maintenance
# ---------------------------------------------------------------------------


class TestFilesAndMaintenance:
    @pytest.mark.asyncio
    async def test_ingest_file_uses_matching_loader(
        self, tmp_path, vector_store: MockVectorStore
    ) -> None:
        from bookrag.providers.loaders.text_loader import TextBookLoader

        book = tmp_path / "notes.txt"
        book.write_text("Chapter 1\nHello there.\n\nChapter 2\nGoodbye.", encoding="utf-8")
        service = _make_service(vector_store, loaders=[TextBookLoader()])

        report = await service.ingest_file(str(book), document_id="notes")

        assert report.document_id == "notes"
        assert report.document_name == "notes"
        assert report.units_written == 2

    @pytest.mark.asyncio
    async def test_ingest_file_without_loader(self, tmp_path, vector_store) -> None:
        service = _make_service(vector_store, loaders=[])
        with pytest.raises(ValueError, match="No document loader"):
            await service.ingest_file(str(tmp_path / "book.pdf"))

    @pytest.mark.asyncio
    async def test_delete_document_and_records(
        self, sample_document: Document, vector_store: MockVectorStore
    ) -> None:
        service = _make_service(vector_store)
        await service.ingest_document(sample_document)
        await service.ingest_document(
            Document(document_id="other", name="Other", units=(Unit(unit_index=1, text="x y"),))
        )

        assert await service.delete_records(["moby_1_0"]) == 1
        assert await service.delete_records([]) == 0
        assert await service.delete_document("moby") == 2
        assert await service.get_record_count() == 1

    @pytest.mark.asyncio
    async def test_named_loader_overrides_suffix_match(
        self, tmp_path, vector_store: MockVectorStore
    ) -> None:
        from bookrag.providers.loaders.diary_loader import DiaryLoader
        from bookrag.providers.loaders.text_loader import TextBookLoader

        diary = tmp_path / "entries.txt"
        diary.write_text(
            '[{"date": "2026-02-01", "mood": "calm", "content": "Quiet morning."}]',
            encoding="utf-8",
        )
        service = _make_service(vector_store, loaders=[TextBookLoader(), DiaryLoader()])

        report = await service.ingest_file(str(diary), document_id="d", loader="diary")

        assert report.units_written == 1
        assert vector_store.collections["books"]["d_1_0"].mood == "calm"

    @pytest.mark.asyncio
    async def test_unknown_loader_name(self, tmp_path, vector_store) -> None:
        from bookrag.providers.loaders.text_loader import TextBookLoader

        service = _make_service(vector_store, loaders=[TextBookLoader()])
        with pytest.raises(ValueError, match="No document loader named 'epub'"):
            await service.ingest_file(str(tmp_path / "notes.txt"), loader="epub")

    @pytest.mark.asyncio
    async def test_diary_entries_deleted_by_mood(self, vector_store: MockVectorStore) -> None:
        service = _make_service(vector_store)
        diary = Document(
            document_id="d",
            name="Diary",
            units=(
                Unit(unit_index=1, text="Rain.", date="2026-01-01", mood="sad", tags=("rain",)),
                Unit(unit_index=2, text="Sun.", date="2026-01-02", mood="happy"),
                Unit(unit_index=3, text="Grey.", date="2026-01-03", mood="sad"),
            ),
        )
        await service.ingest_document(diary)

        assert await service.admin.delete_where({"mood": "sad"}) == 2
        assert set(vector_store.collections["books"]) == {"d_2_0"}

        with pytest.raises(ValueError):
            await service.admin.delete_where({})

    @pytest.mark.asyncio
    async def test_admin_stats_reads_store_layout(
        self, sample_document: Document, vector_store: MockVectorStore
    ) -> None:
        service = _make_service(vector_store)
        assert (await service.admin.stats()).spec is None

        await service.ingest_document(sample_document)
        stats = await service.admin.stats()

        assert stats.spec == service.collection
        assert stats.record_count == await service.get_record_count()
