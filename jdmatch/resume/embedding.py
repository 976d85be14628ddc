"""Embedding providers and the per-document vector index artifact.

The index written here is a side artifact for future semantic retrieval;
nothing in the matching path reads it back yet.
"""
from __future__ import annotations
import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

import boto3
import numpy as np
from openai import OpenAI

from .chunker import TextChunk

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        """Generate embeddings for a batch of texts."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the embedding dimension."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier."""
        pass


class MockEmbeddingProvider(EmbeddingProvider):
    """Deterministic vectors seeded from a hash of the text (tests/dev)."""

    def __init__(self, dimension: int = 64):
        self.dimension = dimension

    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        vectors = []
        for text in texts:
            seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
            vec = np.random.default_rng(seed).standard_normal(self.dimension).astype(np.float32)
            norm = np.linalg.norm(vec)
            vectors.append(vec / norm if norm else vec)
        return vectors

    def get_dimension(self) -> int:
        return self.dimension

    def get_model_name(self) -> str:
        return "mock-embedding"


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embedding provider."""

    _dimensions = {
        "text-embedding-3-large": 3072,
        "text-embedding-3-small": 1536,
        "text-embedding-ada-002": 1536,
    }

    def __init__(self, api_key: Optional[str] = None, model: str = "text-embedding-3-small"):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY env var or pass api_key parameter.")
        self.model = model
        self.client = OpenAI(api_key=self.api_key)

    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        if not texts:
            return []

        # Empty strings are rejected by the API; give them zero vectors
        non_empty = [(i, text) for i, text in enumerate(texts) if text.strip()]
        results = [np.zeros(self.get_dimension(), dtype=np.float32) for _ in texts]
        if not non_empty:
            return results

        response = self.client.embeddings.create(
            model=self.model,
            input=[text for _, text in non_empty],
            encoding_format="float"
        )
        for (original_idx, _), item in zip(non_empty, response.data):
            results[original_idx] = np.array(item.embedding, dtype=np.float32)
        return results

    def get_dimension(self) -> int:
        return self._dimensions.get(self.model, 1536)

    def get_model_name(self) -> str:
        return self.model


class BedrockEmbeddingProvider(EmbeddingProvider):
    """Amazon Titan text embeddings through Bedrock (one request per text)."""

    def __init__(self, model: str = "amazon.titan-embed-text-v2:0", region_name: Optional[str] = None,
                 dimension: int = 1024, client=None):
        self.model = model
        self.dimension = dimension
        self.client = client or boto3.client("bedrock-runtime", region_name=region_name)

    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        vectors = []
        for text in texts:
            response = self.client.invoke_model(
                modelId=self.model,
                contentType="application/json",
                accept="application/json",
                body=json.dumps({"inputText": text, "dimensions": self.dimension}),
            )
            payload = json.loads(response["body"].read())
            vectors.append(np.array(payload["embedding"], dtype=np.float32))
        return vectors

    def get_dimension(self) -> int:
        return self.dimension

    def get_model_name(self) -> str:
        return self.model


def save_vector_index(
    index_dir: Path,
    document_id: str,
    chunks: Sequence[TextChunk],
    vectors: Sequence[np.ndarray],
    model_name: str,
) -> Path:
    """Write chunk texts and their vectors to ``<index_dir>/<document_id>_index.npz``."""
    if len(chunks) != len(vectors):
        raise ValueError(f"Embedding count mismatch: got {len(vectors)}, expected {len(chunks)}")

    index_dir = Path(index_dir)
    index_dir.mkdir(parents=True, exist_ok=True)
    path = index_dir / f"{document_id}_index.npz"
    matrix = np.vstack(vectors).astype(np.float32) if vectors else np.zeros((0, 0), dtype=np.float32)
    np.savez_compressed(
        path,
        vectors=matrix,
        texts=np.array([c.text for c in chunks], dtype=str),
        chunk_ids=np.array([c.chunk_id for c in chunks], dtype=str),
        model=np.array(model_name),
    )
    logger.debug("Saved vector index %s (%d chunks)", path, len(chunks))
    return path


def load_vector_index(path: Path) -> dict:
    """Read back an index written by ``save_vector_index``."""
    with np.load(path) as data:
        return {
            "vectors": data["vectors"],
            "texts": [str(t) for t in data["texts"]],
            "chunk_ids": [str(c) for c in data["chunk_ids"]],
            "model": str(data["model"]),
        }


def create_embedding_provider(provider: str = "mock", model: Optional[str] = None,
                              region_name: Optional[str] = None) -> EmbeddingProvider:
    """Factory function to create an embedding provider by name"""
    provider = provider.lower()
    if provider == "mock":
        return MockEmbeddingProvider()
    if provider == "openai":
        return OpenAIEmbeddingProvider(model=model or "text-embedding-3-small")
    if provider == "bedrock":
        return BedrockEmbeddingProvider(model=model or "amazon.titan-embed-text-v2:0", region_name=region_name)
    raise ValueError(f"Unsupported embedding provider: {provider}")
