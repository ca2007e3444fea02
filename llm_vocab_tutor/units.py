import functools
import re
import unicodedata
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .structured import InvalidAssignmentError, VocabularyItem

_DIGIT_RUN = re.compile(r"(\d+)")


def _as_int(label: str) -> Optional[int]:
    try:
        return int(label.strip())
    except ValueError:
        return None


def _natural_key(label: str) -> Tuple[Union[Tuple[int, int], Tuple[int, str]], ...]:
    """Split a label into text and digit runs so "Unit 10" sorts after "Unit 2"."""
    text = unicodedata.normalize("NFC", label).casefold()
    parts = []
    for chunk in _DIGIT_RUN.split(text):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk))
    return tuple(parts)


def compare_units(a: str, b: str) -> int:
    """Numeric comparison when both labels are integers, natural comparison otherwise.

    Hangul syllables are encoded in dictionary order, so comparing the
    NFC-normalised text is the Korean collation order.
    """
    a_num, b_num = _as_int(a), _as_int(b)
    if a_num is not None and b_num is not None:
        return (a_num > b_num) - (a_num < b_num)
    a_key, b_key = _natural_key(a), _natural_key(b)
    if a_key != b_key:
        return (a_key > b_key) - (a_key < b_key)
    return (a > b) - (a < b)


def build_unit_index(items: Iterable[VocabularyItem]) -> List[str]:
    """
    Build the ordered list of unit labels for a vocabulary list.

    Units are collected in first-seen order, de-duplicated, then sorted with
    `compare_units`. The result depends only on the set of labels, so it is
    stable for a given vocabulary list.

    Raises:
        InvalidAssignmentError: if an item has an empty unit label
    """
    seen = set()
    order: List[str] = []
    for item in items:
        if not item.unit or not item.unit.strip():
            raise InvalidAssignmentError(f"Vocabulary item '{item.term}' has no unit")
        if item.unit not in seen:
            seen.add(item.unit)
            order.append(item.unit)
    return sorted(order, key=functools.cmp_to_key(compare_units))


def words_for_unit(items: Sequence[VocabularyItem], unit: str) -> List[VocabularyItem]:
    return [item for item in items if item.unit == unit]


def words_for_units(items: Sequence[VocabularyItem], units: Sequence[str]) -> List[VocabularyItem]:
    """Words of several units, unit by unit in the given order."""
    words: List[VocabularyItem] = []
    for unit in units:
        words.extend(words_for_unit(items, unit))
    return words
