"""Coordinator for the streaming ingestion pipeline.

Pipeline stages, per unit (chapter): **chunk -> embed -> write**.

The :class:`IngestionService` prepares the target collection once, then
walks a document's units strictly in order.  Only one unit's chunk batch
is held in memory at a time, and unit N+1 does not start until unit N's
write has returned.  Within a unit, chunk embeddings are fetched
concurrently through :class:`~bookrag.services.ingestion.embedder.Embedder`.

Failure handling is per unit:

- an empty unit is skipped with zero records and no error;
- any embedding failure aborts the whole unit before anything is written,
  and surfaces as :class:`~bookrag.utils.errors.IngestionUnitError`
  carrying the unit index and the partial report;
- units already written stay committed.

Cancellation is honoured between units.  A unit whose write has started is
always allowed to finish so the store never holds half a batch.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Literal

import structlog

from bookrag.models.rag import (
    CollectionSpec,
    Document,
    IngestionReport,
    IngestionState,
    Record,
    Unit,
    UnitOutcome,
)
from bookrag.services.ingestion.chunker import TextChunker
from bookrag.services.ingestion.collection_admin import CollectionAdmin
from bookrag.services.ingestion.embedder import Embedder
from bookrag.utils.errors import IngestionUnitError, StoreWriteError

if TYPE_CHECKING:
    from bookrag.interfaces.document_loader import IDocumentLoader
    from bookrag.interfaces.vector_store_provider import IVectorStoreProvider

logger = structlog.get_logger(logger_name=__name__)

WriteMode = Literal["insert", "upsert"]
UnitCallback = Callable[[UnitOutcome], None]


class _RunTally:
    """Accumulator folded over units during one ingestion run."""

    def __init__(self, document: Document, collection: str) -> None:
        self.document = document
        self.collection = collection
        self.outcomes: list[UnitOutcome] = []
        self.total_inserted = 0
        self.total_chunks = 0
        self.started = time.monotonic()

    def add(self, outcome: UnitOutcome) -> None:
        self.outcomes.append(outcome)
        self.total_inserted += outcome.inserted_count
        self.total_chunks += outcome.chunk_count

    def report(self, state: IngestionState) -> IngestionReport:
        return IngestionReport(
            document_id=self.document.document_id,
            document_name=self.document.name,
            collection=self.collection,
            state=state,
            units=tuple(self.outcomes),
            total_inserted=self.total_inserted,
            total_chunks=self.total_chunks,
            ingestion_time=round(time.monotonic() - self.started, 3),
        )


class IngestionService:
    """Drives chunking, embedding and batch writes for whole documents.

    Parameters
    ----------
    chunker:
        Splits unit text into overlapping windows.
    embedder:
        Validated embedding adapter.  Its dimension must match
        ``collection.dimension``.
    vector_store:
        Destination store.
    collection:
        Name, dimension and metric of the target collection.
    write_mode:
        ``"insert"`` for plain batch inserts or ``"upsert"`` to overwrite
        records with the same identifier on re-ingestion.
    strict_write_counts:
        When ``True`` a store-reported count that differs from the batch
        size fails the unit instead of only logging a warning.
    loaders:
        Document loaders consulted by :meth:`ingest_file`, in order.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedder: Embedder,
        vector_store: IVectorStoreProvider,
        collection: CollectionSpec,
        write_mode: WriteMode = "insert",
        strict_write_counts: bool = False,
        loaders: list[IDocumentLoader] | None = None,
    ) -> None:
        if embedder.dimension != collection.dimension:
            raise ValueError(
                f"Embedder dimension {embedder.dimension} does not match collection "
                f"{collection.name!r} dimension {collection.dimension}"
            )
        if write_mode not in ("insert", "upsert"):
            raise ValueError(f"write_mode must be 'insert' or 'upsert', got {write_mode!r}")
        self._chunker = chunker
        self._embedder = embedder
        self._vector_store = vector_store
        self._collection = collection
        self._write_mode = write_mode
        self._strict_write_counts = strict_write_counts
        self._loaders = list(loaders or [])
        self._admin = CollectionAdmin(vector_store, collection.name)
        self._state = IngestionState.IDLE

    @property
    def state(self) -> IngestionState:
        """Current step of the most recent run."""
        return self._state

    @property
    def collection(self) -> CollectionSpec:
        return self._collection

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest_file(
        self,
        file_path: str,
        *,
        split_by_unit: bool = True,
        document_id: str | None = None,
        name: str | None = None,
        loader: str | None = None,
        cancel_event: asyncio.Event | None = None,
        on_unit: UnitCallback | None = None,
    ) -> IngestionReport:
        """Load *file_path*, then ingest it.

        The loader named *loader* is used when given; otherwise the first
        loader that supports the file.

        Raises
        ------
        ValueError
            If no configured loader matches.
        """
        chosen = self._select_loader(file_path, loader)
        document = await asyncio.to_thread(
            chosen.load,
            file_path,
            split_by_unit=split_by_unit,
            document_id=document_id,
            name=name,
        )
        logger.info(
            "document_loaded",
            loader=chosen.get_loader_name(),
            path=file_path,
            document_id=document.document_id,
            units=len(document.units),
        )
        return await self.ingest_document(document, cancel_event=cancel_event, on_unit=on_unit)

    async def ingest_document(
        self,
        document: Document,
        cancel_event: asyncio.Event | None = None,
        on_unit: UnitCallback | None = None,
    ) -> IngestionReport:
        """Ingest every unit of *document* and return the final tally.

        Parameters
        ----------
        document:
            The loaded document.
        cancel_event:
            Checked before each unit starts.  Once set, no further unit is
            started and the returned report is in state ``CANCELLED``.
        on_unit:
            Called with each unit's :class:`UnitOutcome` as soon as the unit
            finishes.

        Returns
        -------
        IngestionReport
            Per-unit outcomes and the running total of inserted records.

        Raises
        ------
        IngestionUnitError
            When a unit fails; ``report`` holds every outcome up to and
            including the failed unit.
        StoreWriteError
            When the collection cannot be prepared.
        """
        tally = _RunTally(document, self._collection.name)
        logger.info(
            "ingestion_started",
            document_id=document.document_id,
            document_name=document.name,
            units=len(document.units),
            collection=self._collection.name,
        )

        self._state = IngestionState.PREPARING_STORE
        try:
            await self._prepare_store()
        except Exception:
            self._state = IngestionState.FAILED
            raise

        try:
            for unit in document.units:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        "ingestion_cancelled",
                        document_id=document.document_id,
                        next_unit=unit.unit_index,
                        total_inserted=tally.total_inserted,
                    )
                    self._state = IngestionState.CANCELLED
                    return tally.report(IngestionState.CANCELLED)

                outcome = await self._ingest_unit(document, unit, tally)
                tally.add(outcome)
                if on_unit is not None:
                    on_unit(outcome)
        except asyncio.CancelledError:
            self._state = IngestionState.CANCELLED
            logger.info(
                "ingestion_task_cancelled",
                document_id=document.document_id,
                total_inserted=tally.total_inserted,
            )
            raise

        self._state = IngestionState.COMPLETED
        report = tally.report(IngestionState.COMPLETED)
        logger.info(
            "ingestion_complete",
            document_id=document.document_id,
            document_name=document.name,
            units_written=report.units_written,
            chunks=report.total_chunks,
            inserted=report.total_inserted,
            time_s=report.ingestion_time,
        )
        return report

    @property
    def admin(self) -> CollectionAdmin:
        """Deletion and statistics for the target collection."""
        return self._admin

    async def delete_document(self, document_id: str) -> int:
        return await self._admin.delete_document(document_id)

    async def delete_records(self, record_ids: list[str]) -> int:
        return await self._admin.delete_records(record_ids)

    async def get_record_count(self) -> int:
        return await self._vector_store.count(self._collection.name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select_loader(self, file_path: str, name: str | None = None) -> IDocumentLoader:
        if name is not None:
            for loader in self._loaders:
                if loader.get_loader_name() == name:
                    return loader
            raise ValueError(f"No document loader named {name!r}")
        for loader in self._loaders:
            if loader.supports(file_path):
                return loader
        raise ValueError(f"No document loader supports {Path(file_path).name!r}")

    async def _prepare_store(self) -> None:
        status = await self._vector_store.ensure_collection(self._collection)
        loaded = await self._vector_store.load_collection(self._collection.name)
        logger.info(
            "collection_ready",
            collection=self._collection.name,
            status=status.value,
            load_status=loaded.value,
        )

    async def _ingest_unit(
        self, document: Document, unit: Unit, tally: _RunTally
    ) -> UnitOutcome:
        """Run chunk -> embed -> write for one unit."""
        self._state = IngestionState.CHUNKING
        chunks = self._chunker.chunk_unit(document.document_id, document.name, unit)
        if not chunks:
            logger.info("unit_skipped_empty", unit_index=unit.unit_index)
            return UnitOutcome(unit_index=unit.unit_index, status="skipped")

        logger.info("unit_started", unit_index=unit.unit_index, chunks=len(chunks))
        try:
            self._state = IngestionState.EMBEDDING
            vectors = await self._embedder.embed_many([chunk.text for chunk in chunks])
            records = [Record.from_chunk(chunk, vector) for chunk, vector in zip(chunks, vectors)]

            self._state = IngestionState.WRITING
            inserted = await self._write_to_completion(records)
        except Exception as exc:
            raise self._fail_unit(unit, len(chunks), exc, tally) from exc

        mismatch = inserted != len(records)
        if mismatch:
            logger.warning(
                "write_count_mismatch",
                unit_index=unit.unit_index,
                expected=len(records),
                reported=inserted,
                write_mode=self._write_mode,
            )
            if self._strict_write_counts:
                exc = StoreWriteError(
                    message=(
                        f"Store reported {inserted} records written for unit "
                        f"{unit.unit_index}, expected {len(records)}"
                    ),
                    provider_name=self._vector_store.get_provider_name(),
                )
                raise self._fail_unit(unit, len(chunks), exc, tally, inserted=inserted) from exc

        logger.info(
            "unit_ingested",
            unit_index=unit.unit_index,
            chunks=len(chunks),
            inserted=inserted,
            running_total=tally.total_inserted + inserted,
        )
        return UnitOutcome(
            unit_index=unit.unit_index,
            status="written",
            chunk_count=len(chunks),
            inserted_count=inserted,
            count_mismatch=mismatch,
        )

    async def _write_to_completion(self, records: list[Record]) -> int:
        """Write one batch, finishing it even if the calling task is cancelled.

        On cancellation the write is awaited to completion and the
        cancellation is then re-raised.
        """
        write = asyncio.ensure_future(self._write(records))
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            if not write.done():
                logger.info("unit_write_finishing_before_cancel", records=len(records))
                await write
            raise

    async def _write(self, records: list[Record]) -> int:
        if self._write_mode == "upsert":
            return await self._vector_store.upsert(self._collection.name, records)
        return await self._vector_store.insert(self._collection.name, records)

    def _fail_unit(
        self,
        unit: Unit,
        chunk_count: int,
        exc: Exception,
        tally: _RunTally,
        inserted: int = 0,
    ) -> IngestionUnitError:
        """Record the failed unit in *tally* and build the error to raise."""
        outcome = UnitOutcome(
            unit_index=unit.unit_index,
            status="failed",
            chunk_count=chunk_count,
            inserted_count=inserted,
            error=str(exc),
        )
        tally.add(outcome)
        self._state = IngestionState.FAILED
        report = tally.report(IngestionState.FAILED)
        logger.error(
            "unit_failed",
            unit_index=unit.unit_index,
            error=str(exc),
            committed_units=report.units_written,
            total_inserted=report.total_inserted,
        )
        return IngestionUnitError(
            unit_index=unit.unit_index,
            report=report,
            message=f"Ingestion failed at unit {unit.unit_index}: {exc}",
            provider_name=getattr(exc, "provider_name", None),
        )
