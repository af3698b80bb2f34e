"""Disallowed-language checks for user-chosen names."""

from __future__ import annotations

import re
from typing import FrozenSet, Iterable, Optional

from better_profanity import Profanity

# Dictionary entries shorter than this only match whole tokens; as substrings
# they hit ordinary words ("class", "scunthorpe").
_MIN_SUBSTRING_LEN = 5

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_LEET = str.maketrans({"0": "o", "1": "i", "3": "e", "4": "a", "5": "s", "7": "t", "@": "a", "$": "s"})


def _compact(text: str) -> str:
    return _NON_ALNUM.sub("", text.lower())


class ProfanityFilter:
    """``better_profanity``'s dictionary plus operator-supplied high-severity words.

    High-severity words (``HIGH_SEVERITY_PROFANITY``) are also matched as
    substrings of any length.
    """

    def __init__(self, extra_words: Iterable[str] = ()) -> None:
        self.library = Profanity()
        self.high_severity: FrozenSet[str] = frozenset(
            word for word in (_compact(raw) for raw in extra_words) if word
        )
        if self.high_severity:
            self.library.add_censor_words(sorted(self.high_severity))
        dictionary = {_compact(str(word)) for word in self.library.CENSOR_WORDSET}
        self.substrings: FrozenSet[str] = frozenset(
            word for word in dictionary if len(word) >= _MIN_SUBSTRING_LEN
        ) | self.high_severity

    def contains(self, text: Optional[str]) -> bool:
        """Whole-word match, including the library's leetspeak variants."""

        if not text:
            return False
        return self.library.contains_profanity(str(text))

    def contains_strict(self, text: Optional[str]) -> bool:
        """Also catches obfuscated or concatenated words ("xXfuckingXx", "m0therfuck3r")."""

        if not text:
            return False
        if self.contains(text):
            return True
        lowered = str(text).lower()
        for compact in {_compact(lowered), _compact(lowered.translate(_LEET))}:
            if compact and any(word in compact for word in self.substrings):
                return True
        return False


__all__ = ["ProfanityFilter"]
