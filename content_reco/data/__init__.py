from .preprocess import normalize_text, readability_score, strip_tags, tokenize

__all__ = ["normalize_text", "readability_score", "strip_tags", "tokenize"]
