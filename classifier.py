"""
Word classifier run by the workers on each chunk.

A word is a run of alphanumeric characters, apostrophes and underscores.
The classifier counts words, words whose first character is a vowel and
words whose last character is a consonant. Accented letters count by their
base letter, so 'é' is a vowel and 'ç' a consonant.
"""

import unicodedata
from typing import NamedTuple

from protocol import PartialResult

VOWELS = frozenset("aeiou")
WORD_JOINERS = frozenset("'_‘’")


class Classification(NamedTuple):
    result: PartialResult
    carry: int


def is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in WORD_JOINERS


def is_vowel(ch: str) -> bool:
    if not ch.isalpha():
        return False
    return unicodedata.normalize("NFD", ch)[0].lower() in VOWELS


def is_consonant(ch: str) -> bool:
    return ch.isalpha() and not is_vowel(ch)


def carry_inside_word(carry: int) -> bool:
    """True when the byte before the chunk belongs to a word."""
    if carry >= 0x80:
        # tail of a multibyte character, only letters reach here in practice
        return True
    return is_word_char(chr(carry))


def classify(buffer: bytes, size: int, carry: int) -> Classification:
    """Classify buffer[:size]; carry is the byte that preceded it in the file."""
    data = buffer[:size]
    words = vowel_start = consonant_end = 0
    in_word = carry_inside_word(carry)
    last = None

    for ch in data.decode("utf-8", errors="replace"):
        if is_word_char(ch):
            if not in_word:
                words += 1
                if is_vowel(ch):
                    vowel_start += 1
                in_word = True
            last = ch
            continue
        if last is not None and is_consonant(last):
            consonant_end += 1
        in_word = False
        last = None

    if last is not None and is_consonant(last):
        consonant_end += 1

    next_carry = data[-1] if data else carry
    return Classification(PartialResult(words, vowel_start, consonant_end), next_carry)
