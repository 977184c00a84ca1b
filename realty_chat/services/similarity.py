"""Vector similarity helpers."""

import math
from collections.abc import Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity: dot(a, b) / (||a|| * ||b||), clamped to [-1, 1].

    A zero-norm vector has no direction, so its similarity to anything is 0.0.
    Vectors of different length are compared over their common prefix
    (zip semantics); embeddings from one model never differ in length.
    """
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    # Float error can push parallel vectors a hair past 1.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))
