"""Unit tests for CLI modules: bookrag.cli.ingest and bookrag.cli.ask."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bookrag.cli import ask as ask_cli
from bookrag.cli import ingest as ingest_cli
from bookrag.config.prompts import DIARY_NO_ANSWER, DIARY_ROLE
from bookrag.models.rag import CollectionSpec, QAResponse, RetrievedChunk
from bookrag.providers.loaders.diary_loader import DiaryLoader
from bookrag.providers.loaders.text_loader import TextBookLoader
from bookrag.services.ingestion.chunker import TextChunker
from bookrag.services.ingestion.embedder import Embedder
from bookrag.services.ingestion.ingestion_service import IngestionService
from bookrag.utils.errors import GenerationUnavailableError
from tests.conftest import MockEmbeddingProvider, MockVectorStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ingestion_service(store: MockVectorStore, provider: MockEmbeddingProvider | None = None):
    provider = provider or MockEmbeddingProvider()
    return IngestionService(
        chunker=TextChunker(200, 20),
        embedder=Embedder(provider),
        vector_store=store,
        collection=CollectionSpec(name="books", dimension=provider.get_dimension()),
        loaders=[TextBookLoader(), DiaryLoader()],
    )


def _run_ingest(argv: list[str], service) -> int:
    with (
        patch.object(ingest_cli, "configure_logging"),
        patch("bookrag.factory.build_ingestion_service", return_value=(service, "mock")),
    ):
        return ingest_cli.main(argv)


def _run_admin(argv: list[str], store: MockVectorStore) -> int:
    """Run delete/stats with no embedding provider anywhere in reach."""
    with (
        patch.dict("os.environ", {"CHROMADB_COLLECTION": "books"}),
        patch.object(ingest_cli, "configure_logging"),
        patch("bookrag.factory.build_embedding_provider", return_value=None),
        patch("bookrag.factory.build_vector_store", return_value=store),
    ):
        return ingest_cli.main(argv)


def _run_ask(argv: list[str], service) -> int:
    with (
        patch.object(ask_cli, "configure_logging"),
        patch("bookrag.factory.build_qa_service", return_value=(service, "mock")),
    ):
        return ask_cli.main(argv)


@pytest.fixture
def book_file(tmp_path: Path) -> Path:
    book = tmp_path / "notes.txt"
    book.write_text("Chapter 1\nThe first entry.\n\nChapter 2\nThe second entry.\n", encoding="utf-8")
    return book


@pytest.fixture
def diary_file(tmp_path: Path) -> Path:
    entries = [
        {"date": "2026-01-10", "mood": "happy", "tags": ["walk"], "content": "Walked in the park."},
        {"date": "2026-01-11", "mood": "sad", "tags": ["rain"], "content": "Rain all day."},
        {"date": "2026-01-12", "mood": "sad", "tags": ["work"], "content": "Long meeting."},
    ]
    path = tmp_path / "diary.jsonl"
    path.write_text("\n".join(json.dumps(entry) for entry in entries), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Ingest CLI
# ---------------------------------------------------------------------------


class TestIngestCLI:
    def test_no_command_prints_help(self, capsys) -> None:
        assert ingest_cli.main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_ingest_text(self, book_file: Path, capsys) -> None:
        store = MockVectorStore()

        code = _run_ingest(["text", "--file", str(book_file), "--document-id", "notes"], _ingestion_service(store))

        assert code == 0
        out = capsys.readouterr().out
        assert "Chapter   1" in out
        assert "Ingestion complete" in out
        assert set(store.collections["books"]) == {"notes_1_0", "notes_2_0"}

    def test_ingest_diary(self, diary_file: Path, capsys) -> None:
        store = MockVectorStore()

        code = _run_ingest(["diary", "--file", str(diary_file), "--document-id", "d"], _ingestion_service(store))

        assert code == 0
        assert "Entry   3" in capsys.readouterr().out
        assert store.collections["books"]["d_2_0"].mood == "sad"

    def test_subcommand_forces_its_loader(self, book_file: Path, capsys) -> None:
        store = MockVectorStore()

        # The text loader supports .txt, but "diary" must parse it as diary JSON.
        code = _run_ingest(["diary", "--file", str(book_file)], _ingestion_service(store))

        assert code == 1
        assert "Error" in capsys.readouterr().err
        assert store.collections.get("books", {}) == {}

    def test_ingest_failure_returns_error(self, book_file: Path, capsys) -> None:
        service = _ingestion_service(MockVectorStore(), MockEmbeddingProvider(fail_on={"second"}))

        code = _run_ingest(["text", "--file", str(book_file)], service)

        assert code == 1
        err = capsys.readouterr().err
        assert "unit 2" in err
        assert "Committed before failure: 1 chapters" in err

    def test_missing_file(self, tmp_path: Path, capsys) -> None:
        code = _run_ingest(["text", "--file", str(tmp_path / "nope.txt")], _ingestion_service(MockVectorStore()))
        assert code == 1
        assert "Error" in capsys.readouterr().err

    def test_upsert_flag_changes_write_mode(self, book_file: Path) -> None:
        captured = {}

        def _build(settings, vector_store=None):
            captured["write_mode"] = settings.write_mode
            return _ingestion_service(MockVectorStore()), "mock"

        with (
            patch.object(ingest_cli, "configure_logging"),
            patch("bookrag.factory.build_ingestion_service", side_effect=_build),
        ):
            ingest_cli.main(["text", "--file", str(book_file), "--upsert"])

        assert captured["write_mode"] == "upsert"

    def test_no_embedding_provider_blocks_ingest(self, book_file: Path, capsys) -> None:
        code = _run_ingest(["text", "--file", str(book_file)], None)
        assert code == 1


class TestCollectionCommands:
    @pytest.fixture
    def store(self, book_file: Path, diary_file: Path) -> MockVectorStore:
        store = MockVectorStore()
        service = _ingestion_service(store)
        _run_ingest(["text", "--file", str(book_file), "--document-id", "notes"], service)
        _run_ingest(["diary", "--file", str(diary_file), "--document-id", "diary"], service)
        return store

    def test_delete_with_yes(self, store: MockVectorStore, capsys) -> None:
        capsys.readouterr()

        code = _run_admin(["delete", "--document-id", "notes", "--yes"], store)

        assert code == 0
        assert "Deleted 2 records." in capsys.readouterr().out
        assert set(store.collections["books"]) == {"diary_1_0", "diary_2_0", "diary_3_0"}

    def test_delete_where_matches_every_pair(self, store: MockVectorStore, capsys) -> None:
        capsys.readouterr()

        code = _run_admin(["delete", "--where", "mood=sad", "--where", "unit_index=3", "-y"], store)

        assert code == 0
        assert "Deleted 1 records." in capsys.readouterr().out
        assert "diary_2_0" in store.collections["books"]
        assert "diary_3_0" not in store.collections["books"]

    def test_delete_where_single_field(self, store: MockVectorStore, capsys) -> None:
        code = _run_admin(["delete", "--where", "mood=sad", "-y"], store)

        assert code == 0
        assert not any(record.mood == "sad" for record in store.collections["books"].values())
        assert len(store.collections["books"]) == 3

    def test_delete_where_rejects_malformed_pair(self, store: MockVectorStore, capsys) -> None:
        code = _run_admin(["delete", "--where", "mood", "-y"], store)

        assert code == 1
        assert "key=value" in capsys.readouterr().err
        assert len(store.collections["books"]) == 5

    def test_delete_aborted_without_confirmation(self, capsys) -> None:
        admin = MagicMock()
        admin.delete_document = AsyncMock(return_value=0)

        with (
            patch.object(ingest_cli, "configure_logging"),
            patch("bookrag.factory.build_collection_admin", return_value=admin),
            patch("builtins.input", return_value="n"),
        ):
            code = ingest_cli.main(["delete", "--document-id", "notes"])

        assert code == 0
        admin.delete_document.assert_not_called()
        assert "Aborted" in capsys.readouterr().out

    def test_stats_without_embedding_provider(self, capsys) -> None:
        store = MockVectorStore()
        store.specs["books"] = CollectionSpec(name="books", dimension=384, metric="ip")
        store.collections["books"] = {}

        code = _run_admin(["stats"], store)

        assert code == 0
        out = capsys.readouterr().out
        assert "Collection:  books" in out
        assert "Metric:      ip" in out
        assert "Dimension:   384" in out
        assert "Records:     0" in out

    def test_stats_reports_missing_collection(self, capsys) -> None:
        code = _run_admin(["stats"], MockVectorStore())

        assert code == 0
        assert "not created" in capsys.readouterr().out

    def test_stats_counts_records(self, store: MockVectorStore, capsys) -> None:
        capsys.readouterr()

        assert _run_admin(["stats"], store) == 0
        assert "Records:     5" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Ask CLI
# ---------------------------------------------------------------------------


class TestAskCLI:
    def test_prints_answer_and_sources(self, capsys) -> None:
        source = RetrievedChunk(
            record_id="notes_1_0",
            document_name="notes",
            unit_index=1,
            chunk_index=0,
            text="The first entry.",
            score=0.91,
        )
        service = MagicMock()
        service.answer = AsyncMock(
            return_value=QAResponse(question="q", answer="It is the first.", sources=(source,))
        )

        code = _run_ask(["What is first?", "-k", "2", "--show-sources"], service)

        assert code == 0
        out = capsys.readouterr().out
        assert "score=0.9100 chapter=1 chunk=0" in out
        assert out.rstrip().endswith("It is the first.")
        service.answer.assert_awaited_once_with("What is first?", k=2)

    def test_generation_failure(self, capsys) -> None:
        service = MagicMock()
        service.answer = AsyncMock(side_effect=GenerationUnavailableError("down", "mock-llm"))

        assert _run_ask(["q"], service) == 1
        assert "unavailable" in capsys.readouterr().err

    def test_invalid_k(self) -> None:
        with pytest.raises(SystemExit):
            ask_cli.main(["q", "-k", "0"])

    def test_persona_flag_sets_role_and_fallback(self) -> None:
        captured = {}

        def _build(settings, vector_store=None, llm=None):
            captured["settings"] = settings
            service = MagicMock()
            service.answer = AsyncMock(return_value=QAResponse(question="q", answer=DIARY_NO_ANSWER))
            return service, "mock"

        with (
            patch.object(ask_cli, "configure_logging"),
            patch("bookrag.factory.build_qa_service", side_effect=_build),
        ):
            assert ask_cli.main(["When was I sad?", "--persona", "diary"]) == 0

        assert captured["settings"].assistant_role == DIARY_ROLE
        assert captured["settings"].no_answer_message == DIARY_NO_ANSWER

    def test_sources_show_diary_fields(self, capsys) -> None:
        source = RetrievedChunk(
            record_id="d_2_0",
            document_name="diary",
            unit_index=2,
            chunk_index=0,
            text="Rain all day.",
            score=0.8,
            date="2026-01-11",
            mood="sad",
        )
        service = MagicMock()
        service.answer = AsyncMock(
            return_value=QAResponse(question="q", answer="A rainy day.", sources=(source,))
        )

        _run_ask(["q", "--show-sources"], service)

        assert "date=2026-01-11 mood=sad" in capsys.readouterr().out
