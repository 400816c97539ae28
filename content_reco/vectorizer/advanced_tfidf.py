from __future__ import annotations

import math
from collections import Counter
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from ..data.preprocess import advanced_tokenize, ngrams
from ..errors import VectorizationError

MIN_DOCUMENT_FREQUENCY = 2
MAX_DOCUMENT_RATIO = 0.8
NGRAM_MAX = 3


def analyze(text: str) -> List[str]:
    return ngrams(advanced_tokenize(text), NGRAM_MAX)


def build_advanced_vocabulary(
    documents: Sequence[Iterable[str]],
    max_size: int = 5000,
) -> Tuple[Tuple[str, ...], Dict[str, float]]:
    """
    n-gram 문서들로 (terms, idf) 를 만든다.
    - 2개 미만 문서에만 나오거나 80% 넘는 문서에 나오는 term 은 제외
    - idf = ln(N / df), idf 내림차순 (동률은 사전순) 상위 max_size 개
    """
    total = len(documents)
    if total == 0:
        return (), {}

    df: Counter = Counter()
    for doc in documents:
        df.update(set(doc))

    max_df = int(total * MAX_DOCUMENT_RATIO)
    idf = {
        term: math.log(total / n)
        for term, n in df.items()
        if MIN_DOCUMENT_FREQUENCY <= n <= max_df
    }
    ranked = sorted(idf.items(), key=lambda kv: (-kv[1], kv[0]))[:max_size]
    terms = tuple(t for t, _ in ranked)
    return terms, {t: idf[t] for t in terms}


def advanced_tfidf_vector(tokens: Iterable[str], index: Dict[str, int], idf: Dict[str, float]) -> List[float]:
    """
    sublinear TF (1 + ln count) × idf, L2 정규화. vocabulary 가 비어 있으면 VectorizationError.
    """
    if not index:
        raise VectorizationError("advanced vocabulary is empty")

    vector = np.zeros(len(index), dtype=float)
    for term, count in Counter(tokens).items():
        pos = index.get(term)
        if pos is not None:
            vector[pos] = (1.0 + math.log(count)) * idf[term]

    norm = np.linalg.norm(vector)
    if norm > 0:
        vector /= norm
    return vector.tolist()
