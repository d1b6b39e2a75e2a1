"""
Keyword extraction for mixed Vietnamese/English queries.

Keywords are used only for substring membership scoring, so the extractor
returns a set and keeps accents (Vietnamese diacritics carry meaning).
"""

import string
import unicodedata
from typing import Set

# Punctuation stripped from token edges; inner characters are kept so
# terms like "1.1" or "e-tax" survive intact.
_EDGE_PUNCTUATION = string.punctuation + "“”‘’…«»–—"

VIETNAMESE_STOPWORDS = frozenset({
    "anh", "bạn", "bao", "biết", "bằng", "cái", "cách", "các", "cùng", "cũng",
    "cho", "chị", "chúng", "chưa", "chỉ", "còn", "của", "dùng", "được", "đang",
    "đây", "đến", "đó", "gì", "giúp", "hay", "hãy", "hơn", "khi", "không",
    "làm", "lại", "lên", "mình", "mà", "một", "muốn", "này", "nào", "nên",
    "nếu", "nhiều", "như", "nhưng", "những", "nữa", "phải", "qua", "ra", "rằng",
    "rồi", "sau", "sẽ", "sao", "tại", "theo", "thì", "thế", "tôi", "trên",
    "trong", "từ", "vào", "vẫn", "với", "vậy", "xin", "ạ", "nhé", "nha",
    "đâu", "đều", "em", "ơi", "vui", "lòng",
})

ENGLISH_STOPWORDS = frozenset({
    "about", "after", "all", "also", "and", "any", "are", "because", "been",
    "but", "can", "could", "did", "does", "for", "from", "get", "had", "has",
    "have", "her", "his", "how", "into", "its", "just", "more", "not", "now",
    "off", "one", "our", "out", "please", "should", "that", "the", "their",
    "them", "then", "there", "these", "they", "this", "was", "were", "what",
    "when", "where", "which", "who", "why", "will", "with", "would", "you",
    "your",
})

STOPWORDS = VIETNAMESE_STOPWORDS | ENGLISH_STOPWORDS

MIN_KEYWORD_LENGTH = 3


def _is_numeric(token: str) -> bool:
    return token.replace(".", "").replace(",", "").isdigit()


def extract_keywords(text: str) -> Set[str]:
    """
    Turn free text into a set of meaningful lower-cased terms.

    Tokens shorter than three characters, purely numeric tokens and
    Vietnamese/English stopwords are discarded.
    """
    if not text:
        return set()

    keywords = set()
    text = unicodedata.normalize("NFC", text)
    for raw_token in text.lower().split():
        token = raw_token.strip(_EDGE_PUNCTUATION)
        if len(token) < MIN_KEYWORD_LENGTH:
            continue
        if _is_numeric(token):
            continue
        if token in STOPWORDS:
            continue
        keywords.add(token)
    return keywords
