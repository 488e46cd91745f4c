"""
Rating aggregation.

Every source is normalized to a 0-100 scale and weighted:
TMDB 30%, IMDb 30%, Rotten Tomatoes 25%, Metacritic 15%.
Weights are renormalized over the sources that are actually present, so a
missing source never drags the average towards zero.
"""
import math
import re
from typing import Iterable, Optional

from .enums import QualityTier

WEIGHTS = {
    "tmdb": 0.30,
    "imdb": 0.30,
    "rt": 0.25,
    "mc": 0.15,
}

REGIONAL_COUNTRIES = frozenset([
    "KR", "JP", "CN", "TW", "TH", "IN", "ID", "VN", "PH",  # Asia
    "MX", "BR", "AR", "CO", "CL", "PE", "VE", "EC",  # Latin America
])

# Hiragana, Katakana, CJK Unified Ideographs, Hangul Syllables
_ASIAN_SCRIPT = re.compile("[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FFF\uAC00-\uD7AF]")


def _present(value: Optional[float]) -> bool:
    return value is not None and value > 0


def weighted_rating(
    tmdb_rating: Optional[float] = None,
    imdb_rating: Optional[float] = None,
    rotten_tomatoes_rating: Optional[float] = None,
    metacritic_rating: Optional[float] = None,
) -> Optional[int]:
    """Weighted average on a 0-100 scale, or None when no source is usable.

    TMDB and IMDb are 0-10 ratings, Rotten Tomatoes and Metacritic are 0-100.
    Zero and negative values count as "no rating".
    """
    sources = []
    if _present(tmdb_rating):
        sources.append((tmdb_rating * 10, WEIGHTS["tmdb"]))
    if _present(imdb_rating):
        sources.append((imdb_rating * 10, WEIGHTS["imdb"]))
    if _present(rotten_tomatoes_rating):
        sources.append((rotten_tomatoes_rating, WEIGHTS["rt"]))
    if _present(metacritic_rating):
        sources.append((metacritic_rating, WEIGHTS["mc"]))

    if not sources:
        return None

    total_weight = sum(weight for _, weight in sources)
    weighted_sum = sum(value * weight / total_weight for value, weight in sources)
    # half-up, not banker's rounding
    return int(math.floor(weighted_sum + 0.5))


def quality_tier(avg_rating: Optional[int]) -> QualityTier:
    if avg_rating is None:
        return QualityTier.POOR
    if avg_rating >= 80:
        return QualityTier.EXCELLENT
    if avg_rating >= 70:
        return QualityTier.GOOD
    if avg_rating >= 60:
        return QualityTier.AVERAGE
    if avg_rating >= 50:
        return QualityTier.BELOW_AVERAGE
    return QualityTier.POOR


def is_regional(origin_country: Optional[Iterable[str]], original_title: Optional[str]) -> bool:
    """Asian / Latin American origin, or an original title in an Asian script"""
    if origin_country and any(code in REGIONAL_COUNTRIES for code in origin_country):
        return True
    if original_title and _ASIAN_SCRIPT.search(original_title):
        return True
    return False
