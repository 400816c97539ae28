import re
from typing import List

MIN_TOKEN_LENGTH = 3
MAX_TOKEN_LENGTH = 20

# 영어 + 스페인어 불용어 (카탈로그 본문이 두 언어 혼용)
STOP_WORDS = frozenset(
    """
    the and for are but not you all any can had her was one our out has him his how man new now
    old see two way who boy did its let put say she too use that with have this will your from
    they know want been good much some time very when come here just like long make many more
    only over such take than them well were what into then there their these those which while
    about after again also because before being between both could does doing down during each
    few further most other should same under until where whom why would yours itself
    que una los las del por con para como esta este todo hay fue han pero muy ser tan nos
    estar tener hacer poder decir ver dar saber querer llegar pasar tiempo bien vez hombre mujer
    vida mundo casa parte estado nuevo gran mismo está más año día país
    """.split()
)

_TAG_RE = re.compile(r"<[^>]*>")
# \W 는 밑줄을 단어 문자로 보므로 따로 제거
_NON_WORD_RE = re.compile(r"[\W_]+", re.UNICODE)
_SENTENCE_RE = re.compile(r"[.!?]+")
_VOWEL_RUN_RE = re.compile(r"[aeiouyáéíóúü]+", re.IGNORECASE)


def normalize_text(text: str) -> str:
    if not text:
        return ""
    return text.strip().lower()


def strip_tags(text: str) -> str:
    if not text:
        return ""
    return _TAG_RE.sub(" ", text)


def tokenize(text: str) -> List[str]:
    """
    소문자화 → 문자/숫자 외 공백 치환 → 3~20자 토큰만 → 불용어 제거.
    """
    text = normalize_text(text)
    text = _NON_WORD_RE.sub(" ", text)
    return [
        t for t in text.split()
        if MIN_TOKEN_LENGTH <= len(t) <= MAX_TOKEN_LENGTH and t not in STOP_WORDS
    ]


def count_syllables(text: str) -> int:
    # 모음 연속 구간 수로 근사, 최소 1
    return max(len(_VOWEL_RUN_RE.findall(text or "")), 1)


def readability_score(text: str) -> float:
    """
    Flesch reading ease 를 0~1 로 정규화.
    206.835 - 1.015 * (words / sentences) - 84.6 * (syllables / words)
    """
    text = strip_tags(text).strip()
    if not text:
        return 0.0

    sentences = [s for s in _SENTENCE_RE.split(text) if s.strip()]
    words = text.split()
    if not sentences or not words:
        return 0.0

    syllables = count_syllables(text)
    words_per_sentence = len(words) / len(sentences)
    syllables_per_word = syllables / len(words)

    score = 206.835 - (1.015 * words_per_sentence) - (84.6 * syllables_per_word)
    return max(0.0, min(100.0, score)) / 100.0


# ------------------------------------------------------
# 고급 분석기용 (스페인어 stemming + n-gram)
# ------------------------------------------------------
_URL_RE = re.compile(r"https?://\S+")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# 순서대로 검사해서 처음 맞는 접미사 하나만 치환
SPANISH_SUFFIXES = (
    ("ces", "z"),
    ("ses", "s"),
    ("es", ""),
    ("s", ""),
    ("ando", "ar"),
    ("iendo", "er"),
    ("ado", "ar"),
    ("ido", "er"),
    ("ará", "ar"),
    ("erá", "er"),
    ("irá", "ir"),
    ("aría", "ar"),
    ("ería", "er"),
    ("iría", "ir"),
    ("ísimo", ""),
    ("ísima", ""),
    ("mente", ""),
    ("able", ""),
    ("ible", ""),
    ("ción", ""),
    ("sión", ""),
    ("dad", ""),
    ("tad", ""),
    ("eza", ""),
    ("ura", ""),
    ("oso", ""),
    ("osa", ""),
    ("ivo", ""),
    ("iva", ""),
)


def stem(word: str) -> str:
    """단순화한 스페인어 접미사 stemmer. 어간이 3자 이하로 남으면 자르지 않는다."""
    word = word.lower()
    for suffix, replacement in SPANISH_SUFFIXES:
        if len(word) > len(suffix) + 3 and word.endswith(suffix):
            return word[: -len(suffix)] + replacement
    return word


def advanced_tokenize(text: str) -> List[str]:
    """
    태그/URL/이메일 제거 → 문자·숫자 외 공백 치환 → 3자 이상, 불용어 제거 → stemming.
    """
    text = strip_tags(normalize_text(text))
    text = _URL_RE.sub(" ", text)
    text = _EMAIL_RE.sub(" ", text)
    text = _NON_WORD_RE.sub(" ", text)
    return [stem(t) for t in text.split() if len(t) >= MIN_TOKEN_LENGTH and t not in STOP_WORDS]


def ngrams(tokens: List[str], max_n: int = 3) -> List[str]:
    # unigram + "a_b" bigram + "a_b_c" trigram
    out = list(tokens)
    for n in range(2, max_n + 1):
        out.extend("_".join(tokens[i:i + n]) for i in range(len(tokens) - n + 1))
    return out
