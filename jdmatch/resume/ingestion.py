"""Resume ingestion pipeline - turns raw resumes in object storage into the tagged corpus.

For every resume listed under the source prefix:
1. Download to a temporary directory
2. Load plain text and split it into overlapping chunks
3. Embed the chunks and write a per-document vector index
4. Extract tags from the chunk text
5. Upsert the record into the corpus store (flushed per document)
6. Move the source object into the processed partition

A failing document is added to the failure ledger and the run moves on.
Throttling that outlasts the retry budget aborts the run.
"""
from __future__ import annotations
import posixpath
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from jdmatch.llm.provider_base import InferenceError
from jdmatch.observability import counter, get_logger, timer
from jdmatch.storage.corpus_store import CorpusStore
from jdmatch.storage.object_store import ObjectStore, ObjectStoreError, processed_prefix_for

from .chunker import ResumeChunker, TextChunk, join_chunks
from .embedding import EmbeddingProvider, save_vector_index
from .loader import DocumentLoader, DocumentLoadError, is_supported_document
from .models import CorpusRecord
from .tag_extractor import TagExtractor

logger = get_logger(__name__)


class IngestionError(Exception):
    """Resume ingestion error details"""

    def __init__(self, stage: str, error_message: str, file_path: Optional[str] = None):
        self.stage = stage
        self.error_message = error_message
        self.file_path = file_path
        super().__init__(f"Ingestion failed at {stage}: {error_message}")

    def __str__(self):
        return f"IngestionError(stage={self.stage}, error={self.error_message}, file={self.file_path})"


@dataclass
class IngestionStats:
    """Outcome of one ingestion run"""
    pages: int = 0
    listed: int = 0
    skipped_duplicates: int = 0
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    cancelled: bool = False
    duration_s: float = 0.0

    @property
    def processed(self) -> int:
        return len(self.succeeded)


class IngestionPipeline:
    """Sequential, single-writer ingestion over an object store listing."""

    def __init__(
        self,
        object_store: ObjectStore,
        extractor: TagExtractor,
        corpus_store: CorpusStore,
        loader: Optional[DocumentLoader] = None,
        chunker: Optional[ResumeChunker] = None,
        embedder: Optional[EmbeddingProvider] = None,
        index_dir: Optional[Path] = None,
        inter_document_delay_s: float = 2.0,
        extensions: Sequence[str] = (".pdf",),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.object_store = object_store
        self.extractor = extractor
        self.corpus_store = corpus_store
        self.loader = loader or DocumentLoader()
        self.chunker = chunker or ResumeChunker()
        self.embedder = embedder
        self.index_dir = Path(index_dir) if index_dir else None
        self.inter_document_delay_s = inter_document_delay_s
        self.extensions = tuple(extensions)
        self._sleep = sleep

    def run(
        self,
        source_prefix: str = "resume_input/",
        batch_size: int = 100,
        max_docs: int = 200,
        cancel_event: Optional[threading.Event] = None,
    ) -> IngestionStats:
        """Process every supported document under ``source_prefix``.

        Stops when the listing is exhausted, ``max_docs`` documents were
        ingested successfully, or ``cancel_event`` is set (checked between
        documents).
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        stats = IngestionStats()
        started = time.monotonic()
        processed_prefix = processed_prefix_for(source_prefix)
        seen = set()
        page_token: Optional[str] = None
        done = False

        logger.info("Starting ingestion", source_prefix=source_prefix, batch_size=batch_size, max_docs=max_docs)
        try:
            while not done:
                page = self.object_store.list(source_prefix, page_token, batch_size)
                stats.pages += 1

                with tempfile.TemporaryDirectory(prefix="resume-ingest-") as tmp_dir:
                    for obj in page.items:
                        if cancel_event is not None and cancel_event.is_set():
                            logger.warning("Ingestion cancelled", processed=stats.processed)
                            stats.cancelled = True
                            done = True
                            break

                        key = obj.key
                        if not is_supported_document(key, self.extensions) or key.startswith(processed_prefix):
                            continue
                        if key in seen:
                            stats.skipped_duplicates += 1
                            continue
                        seen.add(key)
                        stats.listed += 1

                        if self.inter_document_delay_s > 0:
                            self._sleep(self.inter_document_delay_s)

                        filename = posixpath.basename(key)
                        if self._process_document(key, Path(tmp_dir), processed_prefix):
                            stats.succeeded.append(filename)
                            logger.info("Done", key=key, processed=stats.processed, max_docs=max_docs)
                        else:
                            stats.failed.append(filename)
                            self.corpus_store.record_failures(stats.failed)

                        if stats.processed >= max_docs:
                            logger.info("Reached maximum number of resumes; stopping", max_docs=max_docs)
                            done = True
                            break

                if not page.is_truncated or not page.next_page_token:
                    done = True
                page_token = page.next_page_token
        finally:
            self.corpus_store.record_failures(stats.failed)
            stats.duration_s = time.monotonic() - started

        logger.info("Ingestion finished", pages=stats.pages, succeeded=stats.processed,
                    failed=len(stats.failed), cancelled=stats.cancelled)
        return stats

    def _process_document(self, key: str, tmp_dir: Path, processed_prefix: str) -> bool:
        """Run one document through the pipeline; False when it failed."""
        filename = posixpath.basename(key)
        local_path = tmp_dir / filename
        try:
            with timer("ingestion.document"):
                try:
                    self.object_store.download(key, local_path)
                except ObjectStoreError as e:
                    counter("ingestion.download_failure")
                    raise IngestionError("download", str(e), key) from e

                record = self.ingest_file(local_path, filename)
                self.corpus_store.upsert([record])

                try:
                    self.object_store.move(key, processed_prefix + filename)
                except ObjectStoreError as e:
                    # The record is already persisted; a re-run will simply upsert it again
                    counter("ingestion.move_failure")
                    logger.warning("Could not move processed document", key=key, error=str(e))

            counter("ingestion.document_success")
            return True
        except IngestionError as e:
            counter("ingestion.document_failure", tags={"stage": e.stage})
            logger.error("Failed to process document", key=key, stage=e.stage, error=e.error_message)
            return False
        finally:
            local_path.unlink(missing_ok=True)

    def ingest_file(self, path: Path, filename: Optional[str] = None) -> CorpusRecord:
        """Load, chunk, embed and tag a local file.

        Raises:
            IngestionError: if any stage fails, including unusable model output.
            InferenceError: if the model stayed throttled past the retry budget.
        """
        filename = filename or path.name
        try:
            text = self.loader.load(path)
        except DocumentLoadError as e:
            raise IngestionError("loading", str(e), filename) from e

        chunks = self.chunker.chunk(text)
        if not chunks:
            raise IngestionError("chunking", "No chunks generated from document content", filename)

        if self.embedder is not None:
            self._write_vector_index(Path(filename).stem, chunks, filename)

        try:
            tags = self.extractor.extract_resume_tags(join_chunks(chunks))
        except InferenceError as e:
            if e.is_rate_limited:
                raise
            raise IngestionError("extraction", str(e), filename) from e
        if tags is None:
            raise IngestionError("extraction", "Model output could not be parsed into tags", filename)

        return CorpusRecord.from_tags(filename, tags)

    def _write_vector_index(self, document_id: str, chunks: List[TextChunk], filename: str) -> None:
        try:
            with timer("ingestion.embedding"):
                vectors = self.embedder.embed_batch([c.text for c in chunks])
                if self.index_dir is not None:
                    save_vector_index(self.index_dir, document_id, chunks, vectors,
                                      self.embedder.get_model_name())
        except Exception as e:
            counter("ingestion.embedding_failure")
            raise IngestionError("embedding", f"Failed to generate embeddings: {e}", filename) from e


def create_ingestion_pipeline(object_store: ObjectStore, extractor: TagExtractor, corpus_store: CorpusStore,
                              **kwargs) -> IngestionPipeline:
    """Factory function to create the ingestion pipeline"""
    return IngestionPipeline(object_store, extractor, corpus_store, **kwargs)
