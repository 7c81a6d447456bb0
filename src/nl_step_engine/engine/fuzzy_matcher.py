"""
Fuzzy Matcher - String similarity primitives.

All functions are pure. The composite score blends Jaro-Winkler (character
alignment), bigram overlap (shared substrings) and token matching (word
reordering), falling back to edit distance for very short strings.

Example:
    >>> compare("Submit", "submit form").score > 0.7
    True
    >>> jaro_winkler("martha", "marhta")
    0.961...
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set


@dataclass
class FuzzyMatchResult:
    """Composite similarity with its components."""
    score: float
    breakdown: Dict[str, float] = field(default_factory=dict)
    is_strong_match: bool = False


@dataclass
class BestMatch:
    """Winning candidate from find_best_match."""
    candidate: str
    index: int
    result: FuzzyMatchResult


def jaro_winkler(s1: str, s2: str) -> float:
    """
    Jaro-Winkler similarity in [0, 1].

    The common-prefix bonus (up to 4 characters) is only applied when the
    plain Jaro score already exceeds 0.7.
    """
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    match_range = max(0, max(len(s1), len(s2)) // 2 - 1)
    s1_matches = [False] * len(s1)
    s2_matches = [False] * len(s2)
    matches = 0

    for i, ch in enumerate(s1):
        start = max(0, i - match_range)
        end = min(i + match_range + 1, len(s2))
        for j in range(start, end):
            if s2_matches[j] or ch != s2[j]:
                continue
            s1_matches[i] = True
            s2_matches[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, ch in enumerate(s1):
        if not s1_matches[i]:
            continue
        while not s2_matches[k]:
            k += 1
        if ch != s2[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / len(s1)
        + matches / len(s2)
        + (matches - transpositions / 2) / matches
    ) / 3

    if jaro <= 0.7:
        return jaro

    prefix = 0
    for i in range(min(4, len(s1), len(s2))):
        if s1[i] != s2[i]:
            break
        prefix += 1

    return jaro + prefix * 0.1 * (1 - jaro)


def _ngrams(text: str, n: int) -> Set[str]:
    return {text[i:i + n] for i in range(len(text) - n + 1)}


def character_overlap(s1: str, s2: str) -> float:
    """Shared distinct characters over the larger character set."""
    if not s1 or not s2:
        return 0.0
    chars1, chars2 = set(s1), set(s2)
    return len(chars1 & chars2) / max(len(chars1), len(chars2))


def ngram_overlap(s1: str, s2: str, n: int = 2) -> float:
    """
    Overlap coefficient of character n-grams.

    Strings shorter than n fall back to character-set overlap.
    """
    if len(s1) < n or len(s2) < n:
        return character_overlap(s1, s2)

    grams1 = _ngrams(s1, n)
    grams2 = _ngrams(s2, n)
    if not grams1 or not grams2:
        return 0.0
    return len(grams1 & grams2) / min(len(grams1), len(grams2))


def token_match(s1: str, s2: str) -> float:
    """
    Greedy one-to-one word pairing, tolerant of reordering.

    Only pairs with Jaro-Winkler above 0.7 count; the sum is divided by the
    longer token count.
    """
    tokens1 = s1.split()
    tokens2 = s2.split()
    if not tokens1 or not tokens2:
        return 0.0

    total = 0.0
    used: Set[int] = set()
    for t1 in tokens1:
        best_score = 0.0
        best_idx = -1
        for j, t2 in enumerate(tokens2):
            if j in used:
                continue
            score = jaro_winkler(t1, t2)
            if score > best_score:
                best_score = score
                best_idx = j
        if best_idx >= 0 and best_score > 0.7:
            total += best_score
            used.add(best_idx)

    return total / max(len(tokens1), len(tokens2))


def levenshtein_distance(s1: str, s2: str) -> int:
    """Classic edit distance, two-row dynamic programming."""
    prev = list(range(len(s2) + 1))
    for i in range(1, len(s1) + 1):
        curr = [i] + [0] * len(s2)
        for j in range(1, len(s2) + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            curr[j] = min(prev[j] + 1, curr[j - 1] + 1, prev[j - 1] + cost)
        prev = curr
    return prev[len(s2)]


def normalized_levenshtein(s1: str, s2: str) -> float:
    """1 - distance / longer length."""
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return 1 - levenshtein_distance(s1, s2) / max(len(s1), len(s2))


def lcs_length(s1: str, s2: str) -> int:
    """Length of the longest common subsequence."""
    if not s1 or not s2:
        return 0
    prev = [0] * (len(s2) + 1)
    for i in range(1, len(s1) + 1):
        curr = [0] * (len(s2) + 1)
        for j in range(1, len(s2) + 1):
            if s1[i - 1] == s2[j - 1]:
                curr[j] = prev[j - 1] + 1
            else:
                curr[j] = max(prev[j], curr[j - 1])
        prev = curr
    return prev[len(s2)]


def compare(s1: str, s2: str, threshold: float = 0.7) -> FuzzyMatchResult:
    """
    Composite similarity of two strings (case-insensitive, trimmed).

    score = 0.5 * Jaro-Winkler + 0.3 * bigram overlap + 0.2 * token match,
    or the normalized edit distance when that is higher and either string
    is under 5 characters.
    """
    if not s1 or not s2:
        return FuzzyMatchResult(
            score=0.0,
            breakdown={"jaro_winkler": 0.0, "ngram_overlap": 0.0, "token_match": 0.0, "levenshtein": 0.0},
            is_strong_match=False,
        )

    a = s1.lower().strip()
    b = s2.lower().strip()
    if a == b:
        return FuzzyMatchResult(
            score=1.0,
            breakdown={"jaro_winkler": 1.0, "ngram_overlap": 1.0, "token_match": 1.0, "levenshtein": 1.0},
            is_strong_match=True,
        )

    jw = jaro_winkler(a, b)
    ngram = ngram_overlap(a, b, 2)
    token = token_match(a, b)
    lev = normalized_levenshtein(a, b)

    composite = 0.5 * jw + 0.3 * ngram + 0.2 * token
    score = max(composite, lev) if (len(a) < 5 or len(b) < 5) else composite
    score = max(0.0, min(1.0, score))

    return FuzzyMatchResult(
        score=score,
        breakdown={"jaro_winkler": jw, "ngram_overlap": ngram, "token_match": token, "levenshtein": lev},
        is_strong_match=score >= threshold,
    )


def find_best_match(
    search: str,
    candidates: List[str],
    threshold: float = 0.6,
) -> Optional[BestMatch]:
    """Highest-scoring candidate at or above threshold, or None."""
    best: Optional[BestMatch] = None
    for i, candidate in enumerate(candidates):
        result = compare(search, candidate)
        if result.score >= threshold and (best is None or result.score > best.result.score):
            best = BestMatch(candidate=candidate, index=i, result=result)
    return best


def fuzzy_contains(haystack: str, needle: str, threshold: float = 0.8) -> bool:
    """
    True if needle is a substring of haystack (or vice versa), or every
    needle word has a close word in haystack.
    """
    h = haystack.lower().strip()
    n = needle.lower().strip()
    if n in h or h in n:
        return True

    haystack_words = h.split()
    return all(
        any(jaro_winkler(nw, hw) >= threshold for hw in haystack_words)
        for nw in n.split()
    )


class FuzzyMatcher:
    """
    Injectable facade over the similarity functions.

    Holds only a default threshold, so separate instances can be configured
    independently in tests.
    """

    def __init__(self, strong_match_threshold: float = 0.7):
        self.strong_match_threshold = strong_match_threshold

    def compare(self, s1: str, s2: str) -> FuzzyMatchResult:
        return compare(s1, s2, self.strong_match_threshold)

    def find_best_match(self, search: str, candidates: List[str], threshold: float = 0.6) -> Optional[BestMatch]:
        return find_best_match(search, candidates, threshold)

    def fuzzy_contains(self, haystack: str, needle: str, threshold: float = 0.8) -> bool:
        return fuzzy_contains(haystack, needle, threshold)

    jaro_winkler = staticmethod(jaro_winkler)
    ngram_overlap = staticmethod(ngram_overlap)
    token_match = staticmethod(token_match)
    normalized_levenshtein = staticmethod(normalized_levenshtein)
    lcs_length = staticmethod(lcs_length)
