"""Normalized edit-distance similarity.

score(a, b) = 1 - levenshtein(a, b) / max(len(a), len(b)), so 1.0 is an exact
match and 0.0 means nothing lines up. Two empty strings score 1.0.
"""


def edit_distance(a: str, b: str) -> int:
    """Classic Levenshtein distance (insert, delete, substitute, each cost 1).

    Uses the standard O(n*m) table, keeping only two rows in memory.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(
                previous[j] + 1,  # deletion
                current[j - 1] + 1,  # insertion
                previous[j - 1] + cost,  # substitution
            )
        previous = current
    return previous[-1]


def score(query: str, candidate: str) -> float:
    longest = max(len(query), len(candidate))
    if longest == 0:
        return 1.0
    return 1.0 - edit_distance(query, candidate) / longest


def best_score(query: str, candidates: list[str]) -> float:
    """Highest score of ``query`` against any candidate; 0.0 for an empty list."""
    return max((score(query, candidate) for candidate in candidates), default=0.0)
