#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Wildcard pattern expansion for domain candidates.

A pattern such as "te*t.com" carries one or more "*" markers; every marker is a
single character position filled from ALPHABET (a-z0-9). Expansion is a
depth-first walk over the marker positions, left to right, so with a fixed
branch order the output is fully reproducible:

    >>> generate_domains("te*t.com", alphabet="ab", shuffle=False)
    ['teat.com', 'tebt.com']

With shuffle enabled the alphabet is permuted once per generation run (not per
position). Pass a seed to make the permutation reproducible.

There is no cap on output size: |alphabet| ** wildcards grows fast, callers
bound it (see count_candidates).
"""

from __future__ import annotations

import random
from typing import Iterator, List, Optional, Sequence

ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
WILDCARD = "*"


class InvalidPatternError(ValueError):
    """Pattern is empty or cannot expand to hostnames."""


# ---------------------------
# Validation
# ---------------------------

def validate_alphabet(alphabet: Sequence[str]) -> None:
    if not alphabet:
        raise ValueError("alphabet is empty")
    if len(set(alphabet)) != len(alphabet):
        raise ValueError(f"alphabet has duplicate characters: {''.join(alphabet)!r}")
    for ch in alphabet:
        if len(ch) != 1 or ch == WILDCARD:
            raise ValueError(f"invalid alphabet character: {ch!r}")


def validate_pattern(pattern: str) -> None:
    if pattern is None or not pattern.strip():
        raise InvalidPatternError("pattern is empty")
    if any(ch.isspace() for ch in pattern):
        raise InvalidPatternError(f"pattern contains whitespace: {pattern!r}")


def wildcard_positions(pattern: str) -> List[int]:
    return [i for i, ch in enumerate(pattern) if ch == WILDCARD]


def count_candidates(pattern: str, alphabet: Sequence[str] = ALPHABET) -> int:
    """Number of candidates generate_domains() would return, without generating them."""
    validate_pattern(pattern)
    return len(alphabet) ** len(wildcard_positions(pattern))


# ---------------------------
# Expansion
# ---------------------------

def branch_order(alphabet: Sequence[str] = ALPHABET,
                 shuffle: bool = False,
                 seed: Optional[int] = None) -> List[str]:
    chars = list(alphabet)
    if shuffle:
        random.Random(seed).shuffle(chars)
    return chars


def _expand(chars: List[str], positions: List[int], depth: int, order: List[str]) -> Iterator[str]:
    if depth == len(positions):
        yield "".join(chars)
        return
    pos = positions[depth]
    for ch in order:
        chars[pos] = ch
        yield from _expand(chars, positions, depth + 1, order)
    chars[pos] = WILDCARD


def iter_domains(pattern: str,
                 alphabet: Sequence[str] = ALPHABET,
                 shuffle: bool = True,
                 seed: Optional[int] = None) -> Iterator[str]:
    validate_pattern(pattern)
    validate_alphabet(alphabet)

    positions = wildcard_positions(pattern)
    if not positions:
        yield pattern
        return

    order = branch_order(alphabet, shuffle=shuffle, seed=seed)
    yield from _expand(list(pattern), positions, 0, order)


def generate_domains(pattern: str,
                     alphabet: Sequence[str] = ALPHABET,
                     shuffle: bool = True,
                     seed: Optional[int] = None) -> List[str]:
    return list(iter_domains(pattern, alphabet=alphabet, shuffle=shuffle, seed=seed))
