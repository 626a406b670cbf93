"""
Offline embedding model and cosine helpers.

Vectors come from the hashing trick: every word of the text, plus the
character trigrams of longer words, is hashed into one of ``dim`` buckets.
Texts sharing vocabulary (a node's name, its property keys and values)
therefore land close together without any trained model.
"""
from __future__ import annotations

import hashlib
import re
from typing import Iterator, List, Sequence

import numpy as np

from .config import settings
from .errors import InvalidArgumentError

_WORD = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Word tokens in their original case; punctuation is dropped."""
    return _WORD.findall(text)


class HashEmbeddingModel:
    """
    Deterministic embeddings for ``Node.text()`` and free-text queries.
    Production deployments plug their own model in behind ``embed``.
    """

    def __init__(self, dim: int | None = None, ngram: int = 3) -> None:
        self.dim = dim or settings.embedding_dim
        self.ngram = ngram

    def features(self, text: str) -> Iterator[str]:
        for word in tokenize(text.lower()):
            yield word
            if len(word) > self.ngram:
                for i in range(len(word) - self.ngram + 1):
                    yield word[i : i + self.ngram]

    def bucket(self, feature: str) -> int:
        digest = hashlib.sha256(feature.encode("utf-8")).digest()
        return int.from_bytes(digest[:4], "little") % self.dim

    def embed(self, text: str) -> List[float]:
        vec = np.zeros(self.dim, dtype=np.float32)
        buckets = [self.bucket(feature) for feature in self.features(text)]
        if buckets:
            np.add.at(vec, buckets, 1.0)
            vec /= np.linalg.norm(vec)
        return vec.tolist()


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    a = np.asarray(vec_a, dtype=np.float32)
    b = np.asarray(vec_b, dtype=np.float32)
    if a.shape != b.shape:
        raise InvalidArgumentError("Vectors must have same dimension")
    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def cosine_scores(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against every row of ``matrix``."""
    q = np.asarray(query, dtype=np.float32)
    if matrix.ndim != 2 or matrix.shape[1] != q.shape[0]:
        raise InvalidArgumentError(
            f"Query vector has dimension {q.shape[0]}, index expects {matrix.shape[-1]}"
        )
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
