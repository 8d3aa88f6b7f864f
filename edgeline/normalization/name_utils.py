"""Team name normalization and variant helpers."""

from difflib import SequenceMatcher
from typing import List
import re
import unicodedata

# Words dropped to produce the "without suffixes" variant of collegiate names
_COLLEGIATE_SUFFIXES = {"university", "college", "state", "st", "st.", "univ", "u", "u."}

# Common collegiate abbreviations and the longer names books print for them
_ABBREVIATION_EXPANSIONS = {
    "ucla": ("los angeles", "california los angeles", "bruins", "ucla bruins"),
    "usc": ("southern california", "south california", "trojans", "usc trojans"),
    "unc": ("north carolina", "tar heels", "north carolina tar heels"),
    "duke": ("blue devils", "duke blue devils"),
    "kentucky": ("wildcats", "kentucky wildcats"),
    "kansas": ("jayhawks", "kansas jayhawks"),
    "uc": ("california", "university of california"),
}
_ABBREVIATION = re.compile(r"[a-z]{2,4}")


def normalize_name_for_matching(name: str) -> str:
    if not name:
        return ""
    text = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    text = text.lower().strip()
    text = re.sub(r"[^\w\s.&'-]", "", text)
    return " ".join(text.split())


def team_name_variants(name: str) -> List[str]:
    """
    Candidate spellings a sportsbook might use for a team.

    Returns the full name, first token, last token, first two tokens, the
    name with collegiate suffixes removed and any abbreviation expansions
    ("UCLA" to "california los angeles", "UC Irvine" to "california irvine"),
    de-duplicated in that order.

    Example:
        team_name_variants("Los Angeles Lakers")
        -> ["los angeles lakers", "los", "lakers", "los angeles"]
    """
    normalized = normalize_name_for_matching(name)
    if not normalized:
        return []
    words = normalized.split()
    variants = [normalized, words[0]]
    if len(words) > 1:
        variants.append(words[-1])
        variants.append(" ".join(words[:2]))
    stripped = " ".join(word for word in words if word not in _COLLEGIATE_SUFFIXES)
    if stripped and stripped != normalized:
        variants.append(stripped)
    variants.extend(_abbreviation_variants(normalized, words))

    seen = set()
    unique = []
    for variant in variants:
        if variant not in seen:
            seen.add(variant)
            unique.append(variant)
    return unique


def _abbreviation_variants(normalized: str, words: List[str]) -> List[str]:
    expansions = list(_ABBREVIATION_EXPANSIONS.get(normalized, ()))
    # "UCLA Bruins" style names: a leading abbreviation other than the bare "uc" prefix
    head = words[0]
    if len(words) > 1 and head != "uc" and _ABBREVIATION.fullmatch(head):
        expansions.extend(_ABBREVIATION_EXPANSIONS.get(head, ()))
    if head == "uc" and len(words) > 1:
        campus = " ".join(words[1:])
        expansions.extend([
            f"university of california {campus}",
            f"california {campus}",
            "uc" + campus.replace(" ", ""),
        ])
    return expansions


def variant_matches(outcome_name: str, variants: List[str], exact_only: bool = False) -> bool:
    """Exact or substring match in either direction against any variant."""
    label = normalize_name_for_matching(outcome_name)
    if not label:
        return False
    for variant in variants:
        if label == variant:
            return True
        if not exact_only and (variant in label or label in variant):
            return True
    return False


def similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1] between two normalized names."""
    left = normalize_name_for_matching(a)
    right = normalize_name_for_matching(b)
    if not left and not right:
        return 1.0
    return SequenceMatcher(None, left, right).ratio()


def best_similarity(outcome_name: str, variants: List[str]) -> float:
    if not variants:
        return 0.0
    return max(similarity(outcome_name, variant) for variant in variants)
