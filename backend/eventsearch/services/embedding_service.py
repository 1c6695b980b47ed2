import hashlib
import logging
import re
from functools import lru_cache
from threading import Lock
from typing import Iterable

import numpy as np

from ..config import settings
from ..models import Vendor

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"[a-z0-9]+")


def vendor_embedding_text(vendor: Vendor) -> str:
    parts = [
        vendor.name,
        vendor.business_name or "",
        vendor.service_type.replace("_", " "),
        " ".join(vendor.search_keywords or []),
        vendor.description or "",
    ]
    return " ".join(part.strip() for part in parts if part and part.strip())


class EmbeddingService:
    """Sentence-transformers encoder for vendor text and queries.

    The model is loaded lazily on first use. When it is disabled, missing or
    fails at inference time the service switches permanently to a
    deterministic token-hash embedding of the same dimension, so stored
    vectors and query vectors always remain comparable within one process.
    """

    def __init__(self, *, dimension: int | None = None, use_model: bool | None = None) -> None:
        self.dimension = dimension or settings.embedding_dimension
        self.use_model = settings.enable_model_embeddings if use_model is None else use_model
        self._model = None
        self._model_failed = False
        self._model_lock = Lock()

    @property
    def model_loaded(self) -> bool:
        return self._model is not None

    def _load_model(self):
        if not self.use_model or self._model_failed:
            return None
        with self._model_lock:
            if self._model is not None or self._model_failed:
                return self._model

            try:
                from sentence_transformers import SentenceTransformer

                model = SentenceTransformer(settings.embedding_model_name, device="cpu")
                model.encode(["warmup"], normalize_embeddings=True)
                self._model = model
                logger.info("embedding_model_loaded name=%s", settings.embedding_model_name)
            except Exception as exc:  # pragma: no cover - depends on installed extras
                self._model_failed = True
                logger.warning("embedding_model_unavailable fallback=hash error=%s", exc)
        return self._model

    def _mark_model_failed(self, exc: Exception) -> None:
        with self._model_lock:
            self._model_failed = True
            self._model = None
        logger.warning("embedding_inference_failed fallback=hash error=%s", exc)

    def hash_embed(self, text: str) -> list[float]:
        vector = np.zeros(self.dimension, dtype=np.float32)
        tokens = TOKEN_RE.findall(text.lower()) or [text.lower().strip() or "empty"]

        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            for idx in range(0, len(digest), 2):
                bucket = ((digest[idx] << 8) + digest[idx + 1]) % self.dimension
                sign = 1.0 if digest[idx] % 2 == 0 else -1.0
                vector[bucket] += sign * (0.5 + digest[idx + 1] / 255.0)

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()

    def encode(self, text: str) -> list[float]:
        model = self._load_model()
        if model is not None:
            try:
                return np.asarray(model.encode(text, normalize_embeddings=True), dtype=np.float32).tolist()
            except Exception as exc:  # pragma: no cover - runtime dependent
                self._mark_model_failed(exc)
        return self.hash_embed(text)

    def encode_many(self, texts: Iterable[str]) -> list[list[float]]:
        batch = list(texts)
        if not batch:
            return []

        model = self._load_model()
        if model is not None:
            try:
                matrix = np.asarray(model.encode(batch, normalize_embeddings=True), dtype=np.float32)
                return [row.tolist() for row in matrix]
            except Exception as exc:  # pragma: no cover - runtime dependent
                self._mark_model_failed(exc)
        return [self.hash_embed(text) for text in batch]

    def encode_vendors(self, vendors: Iterable[Vendor]) -> list[list[float]]:
        return self.encode_many(vendor_embedding_text(vendor) for vendor in vendors)


@lru_cache(maxsize=1)
def get_embedding_service() -> EmbeddingService:
    return EmbeddingService()
