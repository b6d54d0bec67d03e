"""
Embedding Service

Embedding generation using sentence-transformers, run locally.

Default model: google/embeddinggemma-300m
- 768 dimensions (must match EMBEDDING_DIMENSION, the vector column size)
- normalized output, so cosine distance is a plain dot product

Features:
---------
- Lazy initialization: the model is loaded on the first embed() call, so
  code paths that never embed (keyword-only search, status queries) never
  need the model to be configured or downloadable
- CPU/CUDA/MPS device selection with fallback to CPU
- Model work runs in a thread (asyncio.to_thread) to keep the loop free
- Query and document prompts for models that define them (embeddinggemma)
- Every failure surfaces as EmbeddingError
"""

import asyncio
import logging
import threading
from typing import Optional

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from content_indexer.core.config import settings


logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Embedding could not be generated (empty input, unconfigured or failing model)."""
    pass


class EmbeddingService:
    """
    Service for generating embeddings using sentence-transformers.

    Usage:
    ------
    embedder = EmbeddingService()

    # Loads the model on first use
    vector = await embedder.embed_query("What is reciprocal rank fusion?")
    """

    def __init__(
        self,
        model_name: str = None,
        dimension: int = None,
        device: str = None,
        normalize: bool = True
    ):
        """
        Args:
            model_name: Model name/path (default from settings; empty = unconfigured)
            dimension: Expected vector size (default from settings)
            device: Device to use: cpu, cuda, mps (default from settings)
            normalize: Whether to normalize embeddings (default True)
        """
        self.model_name = settings.EMBEDDING_MODEL if model_name is None else model_name
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.device = device or settings.EMBEDDING_DEVICE
        self.normalize = normalize
        self.query_prompt = settings.EMBEDDING_QUERY_PROMPT
        self.document_prompt = settings.EMBEDDING_DOCUMENT_PROMPT

        self.model: Optional[SentenceTransformer] = None
        # Taken in the loading thread: the global service is shared by
        # tasks that each run their own event loop
        self._load_lock = threading.Lock()

        self._validate_device()

    def _validate_device(self) -> None:
        """Validate and adjust device setting based on availability."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, falling back to CPU")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("MPS not available, falling back to CPU")
            self.device = "cpu"

    @property
    def is_configured(self) -> bool:
        return bool(self.model_name and self.model_name.strip())

    @property
    def is_initialized(self) -> bool:
        return self.model is not None

    async def initialize(self) -> None:
        """
        Load the model (downloads it if not cached).

        Called implicitly by embed(); safe to call concurrently, from any
        event loop.

        Raises:
            EmbeddingError: If no model is configured, loading fails or the
                model's dimension does not match the vector column
        """
        if self.model is not None:
            return

        if not self.is_configured:
            raise EmbeddingError("Embedding model not configured (EMBEDDING_MODEL is empty)")

        await asyncio.to_thread(self._load_model)

    def _load_model(self) -> None:
        """Load and check the model (sync, runs in thread pool)."""
        with self._load_lock:
            if self.model is not None:
                return

            logger.info(f"Loading embedding model: {self.model_name} on {self.device}")
            try:
                model = SentenceTransformer(self.model_name, device=self.device)
            except Exception as e:
                logger.error(f"Failed to load embedding model {self.model_name}: {e}")
                raise EmbeddingError(f"Failed to load embedding model {self.model_name}: {e}") from e

            model_dimension = model.get_sentence_embedding_dimension()
            if model_dimension != self.dimension:
                raise EmbeddingError(
                    f"Model {self.model_name} produces {model_dimension}-dim vectors, "
                    f"EMBEDDING_DIMENSION is {self.dimension}"
                )

            self.model = model
            logger.info(
                f"Embedding model loaded successfully. "
                f"Dimension: {model_dimension}, Device: {self.device}"
            )

    async def embed(self, text: str, prompt_name: Optional[str] = None) -> list[float]:
        """
        Generate the embedding for one text.

        Args:
            text: Text to embed
            prompt_name: Model prompt to encode with (default: the document
                prompt, used for chunks)

        Returns:
            Embedding vector as list of floats

        Raises:
            EmbeddingError: Empty text, unconfigured model or encode failure
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot generate embedding for empty text")

        try:
            await self.initialize()
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding model unavailable: {e}") from e

        try:
            embedding = await asyncio.to_thread(
                self._encode, text, prompt_name or self.document_prompt
            )
        except Exception as e:
            raise EmbeddingError(f"Embedding generation failed: {e}") from e

        return embedding.tolist()

    async def embed_query(self, text: str) -> list[float]:
        """Embed a search query (encoded with the query prompt)."""
        return await self.embed(text, prompt_name=self.query_prompt)

    def _encode(self, text: str, prompt_name: str) -> np.ndarray:
        """Run the model (sync, runs in thread pool)."""
        kwargs = {}
        # Models without named prompts encode queries and documents alike
        if prompt_name in (getattr(self.model, "prompts", None) or {}):
            kwargs["prompt_name"] = prompt_name

        return self.model.encode(
            text,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
            convert_to_numpy=True,
            **kwargs,
        )

    async def shutdown(self) -> None:
        """Free the model (and CUDA cache)."""
        if self.model is not None:
            if self.device == "cuda":
                torch.cuda.empty_cache()
            self.model = None

        logger.info("Embedding service shut down")


# ========================================
# Global Instance Management
# ========================================

_embedding_service: Optional[EmbeddingService] = None


def get_embedding_service() -> EmbeddingService:
    """
    Get or create the global embedding service instance.

    Creating the service does not load the model; that happens on the
    first embed() call.
    """
    global _embedding_service

    if _embedding_service is None:
        _embedding_service = EmbeddingService()

    return _embedding_service


async def shutdown_embedding_service() -> None:
    """Shutdown the global embedding service (application shutdown)."""
    global _embedding_service

    if _embedding_service is not None:
        await _embedding_service.shutdown()
        _embedding_service = None
