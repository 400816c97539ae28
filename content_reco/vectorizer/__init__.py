"""
콘텐츠 벡터화 모듈.

- vocabulary: 코퍼스 vocabulary / IDF / 카테고리·태그 universe 스냅샷 캐시
- content_vectorizer: 아이템별 TF-IDF + one-hot 벡터, 스칼라 지표, 배치 재계산
"""

from .content_vectorizer import ContentVectorizer, cosine_similarity
from .vocabulary import VocabularyCache, VocabularySnapshot, build_snapshot

__all__ = [
    "ContentVectorizer",
    "VocabularyCache",
    "VocabularySnapshot",
    "build_snapshot",
    "cosine_similarity",
]
