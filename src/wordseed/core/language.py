"""Per-language text rules for vocabulary-constrained validation.

Three rule sets cover the supported languages:

- Chinese: every CJK ideograph must be known, character by character
- Japanese: kanji must be known; kana are always allowed
- Space-delimited (en, sv, ...): every word must be known (case-insensitive)

Digits, punctuation, whitespace, symbols and emoji are allowed in every
language. Latin letters inside character-script text are reported once
with the LATIN_MARKER token instead of letter by letter.

Usage:
    from wordseed.core.language import rules_for

    rules = rules_for("zh")
    allowed = rules.allowed_tokens(["我", "喜欢"], target="猫")
    illegal = rules.find_illegal("我喜欢狗", allowed)  # ["狗"]
"""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable

LATIN_MARKER = "[latin]"
BLANK_MARKER = "____"

# Letter runs for space-delimited languages (digits and underscores excluded)
_WORD_RE = re.compile(r"[^\W\d_]+")


def _is_letter(char: str) -> bool:
    return unicodedata.category(char).startswith("L")


def _is_latin(char: str) -> bool:
    if char.isascii():
        return char.isalpha()
    return _is_letter(char) and unicodedata.name(char, "").startswith("LATIN")


def is_cjk_ideograph(char: str) -> bool:
    code = ord(char)
    return 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF


def is_kana(char: str) -> bool:
    code = ord(char)
    return (
        0x3040 <= code <= 0x309F
        or 0x30A0 <= code <= 0x30FF
        or 0x31F0 <= code <= 0x31FF
        or 0xFF65 <= code <= 0xFF9F
    )


class LanguageRules:
    """Interface shared by every language rule set."""

    code = ""
    name = "the target language"
    explanation_language = "the target language"
    by_word = False

    def word_char(self, char: str) -> bool:
        raise NotImplementedError

    def tokens(self, text: str) -> list[str]:
        """Split text into the units validation checks."""
        raise NotImplementedError

    def extract_tokens(self, words: Iterable[str]) -> set[str]:
        result: set[str] = set()
        for word in words:
            result.update(self.tokens(word))
        return result

    def allowed_tokens(
        self,
        known_words: Iterable[str],
        target: str = "",
        extra_words: Iterable[str] = (),
    ) -> frozenset[str]:
        """Build the allowed set from known, target and extra (distractor) words."""
        allowed = self.extract_tokens(known_words)
        allowed.update(self.tokens(target))
        allowed.update(self.extract_tokens(extra_words))
        return frozenset(allowed)

    def find_illegal(self, text: str, allowed: frozenset[str] | set[str]) -> list[str]:
        """Return illegal tokens in first-seen order (empty list = valid)."""
        raise NotImplementedError

    def is_valid(self, text: str, allowed: frozenset[str] | set[str]) -> bool:
        return not self.find_illegal(text, allowed)


class CharacterScriptRules(LanguageRules):
    """Rules for languages validated character by character."""

    def tokens(self, text: str) -> list[str]:
        return [char for char in text if self.word_char(char)]

    def always_allowed(self, char: str) -> bool:
        return False

    def find_illegal(self, text: str, allowed: frozenset[str] | set[str]) -> list[str]:
        illegal: list[str] = []
        has_latin = False

        for char in text.replace(BLANK_MARKER, ""):
            if not _is_letter(char):
                continue
            if _is_latin(char):
                has_latin = True
                continue
            if char in allowed or self.always_allowed(char):
                continue
            if char not in illegal:
                illegal.append(char)

        if has_latin:
            illegal.append(LATIN_MARKER)
        return illegal


class ChineseRules(CharacterScriptRules):
    code = "zh"
    name = "Chinese"
    explanation_language = "Chinese (no English)"

    def word_char(self, char: str) -> bool:
        return is_cjk_ideograph(char)


class JapaneseRules(CharacterScriptRules):
    code = "ja"
    name = "Japanese"
    explanation_language = "Japanese (no English)"

    def word_char(self, char: str) -> bool:
        return is_cjk_ideograph(char) or is_kana(char)

    def tokens(self, text: str) -> list[str]:
        return [char for char in text if is_cjk_ideograph(char)]

    def always_allowed(self, char: str) -> bool:
        return is_kana(char)


class SpaceDelimitedRules(LanguageRules):
    by_word = True

    def __init__(self, code: str = "", name: str = "the target language", explanation_language: str | None = None):
        self.code = code
        self.name = name
        self.explanation_language = explanation_language or name

    def word_char(self, char: str) -> bool:
        return _is_letter(char) or char.isdigit()

    def tokens(self, text: str) -> list[str]:
        return [match.group(0).lower() for match in _WORD_RE.finditer(text)]

    def find_illegal(self, text: str, allowed: frozenset[str] | set[str]) -> list[str]:
        illegal: list[str] = []
        for token in self.tokens(text.replace(BLANK_MARKER, " ")):
            if token not in allowed and token not in illegal:
                illegal.append(token)
        return illegal


_RULES: dict[str, LanguageRules] = {
    "zh": ChineseRules(),
    "ja": JapaneseRules(),
    "en": SpaceDelimitedRules("en", "English", "simple English"),
    "sv": SpaceDelimitedRules("sv", "Swedish", "Swedish (no English)"),
}

_DEFAULT_RULES = SpaceDelimitedRules()


def rules_for(language: str) -> LanguageRules:
    """Get the rule set for a language code (space-delimited by default)."""
    return _RULES.get(language, _DEFAULT_RULES)


def supported_languages() -> list[str]:
    return sorted(_RULES)


# =============================================================================
# PINYIN
# =============================================================================

# Combining marks left by NFD decomposition of tone-marked vowels
_TONE_MARKS = {
    "\u0304": 1,  # macron: ā
    "\u0301": 2,  # acute: á
    "\u030c": 3,  # caron: ǎ
    "\u0300": 4,  # grave: à
}
_DIAERESIS = "\u0308"


def pinyin_key(pinyin: str) -> tuple[str, tuple[int, ...]]:
    """Reduce pinyin to (letters, tone sequence) for comparison.

    Tone marks and tone numbers produce the same key, ü/u:/v are
    unified as "v" and neutral tones (5 or 0) are dropped.

    Examples:
        >>> pinyin_key("nǐ hǎo")
        ('nihao', (3, 3))
        >>> pinyin_key("Ni3 Hao3")
        ('nihao', (3, 3))
    """
    text = unicodedata.normalize("NFD", pinyin.strip().lower()).replace("u:", "v")
    letters: list[str] = []
    tones: list[int] = []

    for char in text:
        if char in _TONE_MARKS:
            tones.append(_TONE_MARKS[char])
        elif char == _DIAERESIS:
            if letters and letters[-1] == "u":
                letters[-1] = "v"
        elif char in "1234":
            tones.append(int(char))
        elif char.isascii() and char.isalpha():
            letters.append(char)

    return "".join(letters), tuple(tones)


def pinyin_matches(expected: str | None, response: str | None) -> bool:
    """Check a typed pinyin answer against the stored reading."""
    if not expected or not response:
        return False
    expected_letters, expected_tones = pinyin_key(expected)
    if not expected_letters:
        return False
    return pinyin_key(response) == (expected_letters, expected_tones)
