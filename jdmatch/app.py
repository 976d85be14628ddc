"""Builds the concrete collaborators for a loaded ``MatcherConfig``.

Nothing here is cached at module level: every client, store and service is
created on demand and passed explicitly to whoever needs it.
"""
from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Optional

from jdmatch.config import ConfigError, MatcherConfig
from jdmatch.llm.mock_provider import MockInferenceClient
from jdmatch.llm.provider_base import InferenceClient
from jdmatch.llm.retry_logic import ResilientInvoker, RetryConfig
from jdmatch.matching.scorer import create_relevance_scorer
from jdmatch.matching.service import MatchService, create_match_service
from jdmatch.resume.chunker import ChunkingConfig, create_resume_chunker
from jdmatch.resume.embedding import create_embedding_provider
from jdmatch.resume.ingestion import IngestionPipeline, IngestionStats, create_ingestion_pipeline
from jdmatch.resume.tag_extractor import TagExtractor, create_tag_extractor
from jdmatch.storage.corpus_store import CorpusStore
from jdmatch.storage.object_store import LocalObjectStore, ObjectStore, S3ObjectStore, processed_prefix_for
from jdmatch.storage.tabular import ExcelTabularStore

logger = logging.getLogger(__name__)


def create_inference_client(config: MatcherConfig) -> InferenceClient:
    provider = config.llm.provider
    logger.debug("Using %s inference provider (model %s)", provider, config.llm.model)
    if provider == "mock":
        return MockInferenceClient()
    if provider == "openai":
        from jdmatch.llm.openai_provider import OpenAIInferenceClient
        try:
            return OpenAIInferenceClient(model=config.llm.model, timeout=config.llm.timeout_s)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    if provider == "bedrock":
        from jdmatch.llm.bedrock_provider import BedrockInferenceClient
        return BedrockInferenceClient(model=config.llm.model, region_name=config.llm.region)
    raise ConfigError(f"Unsupported LLM provider: {provider}")


def create_invoker(config: MatcherConfig) -> ResilientInvoker:
    return ResilientInvoker(RetryConfig(max_retries=config.retry.max_retries,
                                        initial_delay_ms=config.retry.initial_delay_ms))


def create_object_store(config: MatcherConfig) -> Optional[ObjectStore]:
    """S3 when a bucket is configured, else the local root, else None."""
    if config.storage.bucket:
        return S3ObjectStore(config.storage.bucket, region_name=config.storage.region)
    if config.storage.local_root:
        return LocalObjectStore(Path(config.storage.local_root))
    return None


def create_corpus_store(config: MatcherConfig) -> CorpusStore:
    return CorpusStore(ExcelTabularStore(Path(config.storage.output_path)))


def build_tag_extractor(config: MatcherConfig, client: Optional[InferenceClient] = None,
                        invoker: Optional[ResilientInvoker] = None) -> TagExtractor:
    return create_tag_extractor(
        client or create_inference_client(config),
        invoker or create_invoker(config),
        max_context_chars=config.matching.max_context_chars,
        max_tokens=config.llm.max_tokens,
    )


def build_match_service(config: MatcherConfig, client: Optional[InferenceClient] = None,
                        corpus_store: Optional[CorpusStore] = None,
                        object_store: Optional[ObjectStore] = None) -> MatchService:
    """Wire a MatchService; explicit collaborators win over config-derived ones."""
    client = client or create_inference_client(config)
    invoker = create_invoker(config)
    return create_match_service(
        build_tag_extractor(config, client, invoker),
        create_relevance_scorer(client, invoker, max_tokens=config.llm.max_tokens),
        corpus_store or create_corpus_store(config),
        object_store=object_store if object_store is not None else create_object_store(config),
        processed_prefix=processed_prefix_for(config.ingestion.source_prefix),
        top_n=config.matching.top_n,
        threshold=config.matching.threshold,
    )


def build_ingestion_pipeline(config: MatcherConfig, object_store: Optional[ObjectStore] = None,
                             client: Optional[InferenceClient] = None,
                             corpus_store: Optional[CorpusStore] = None, **kwargs) -> IngestionPipeline:
    object_store = object_store or create_object_store(config)
    if object_store is None:
        raise ConfigError("Ingestion needs storage.bucket or storage.local_root")
    embedder = None
    if config.embedding.enabled:
        try:
            embedder = create_embedding_provider(config.embedding.provider, config.embedding.model,
                                                 region_name=config.storage.region)
        except ValueError as e:
            raise ConfigError(f"Embedding provider unavailable: {e}") from e
    return create_ingestion_pipeline(
        object_store,
        build_tag_extractor(config, client),
        corpus_store or create_corpus_store(config),
        chunker=create_resume_chunker(ChunkingConfig(
            chunk_size=config.ingestion.chunk_size, chunk_overlap=config.ingestion.chunk_overlap)),
        embedder=embedder,
        index_dir=Path(config.embedding.index_dir),
        inter_document_delay_s=config.ingestion.inter_document_delay_s,
        extensions=tuple(config.ingestion.extensions),
        **kwargs,
    )


def run_ingestion(config: MatcherConfig, source_prefix: Optional[str] = None, batch_size: Optional[int] = None,
                  max_docs: Optional[int] = None, cancel_event: Optional[threading.Event] = None,
                  pipeline: Optional[IngestionPipeline] = None) -> IngestionStats:
    """One ingestion run with config defaults for anything not given."""
    pipeline = pipeline or build_ingestion_pipeline(config)
    return pipeline.run(
        source_prefix=config.ingestion.source_prefix if source_prefix is None else source_prefix,
        batch_size=batch_size or config.ingestion.batch_size,
        max_docs=max_docs or config.ingestion.max_docs,
        cancel_event=cancel_event,
    )
