"""Field tag strings.

A tag is a sequence of space separated ``key:"value"`` pairs, for example::

    json:"wt,omitempty" yaml:"w" optional:"true"

The same rules are used by the generator (to decide optionality and error
messages) and by the runtime (to pick encoded key names), so both always agree.
"""

from __future__ import annotations

import json
import re
from typing import FrozenSet, Tuple

from .config import OMIT_SENTINEL, OPTIONAL_TAG, OPTIONAL_VALUES

_PAIR = re.compile(r' *([^\s:"\x7f]+):"((?:[^"\\]|\\.)*)"')


def lookup(tag: str, key: str) -> Tuple[str, bool]:
    i = 0
    n = len(tag)
    while i < n:
        m = _PAIR.match(tag, i)
        if not m:
            break
        i = m.end()
        if m.group(1) != key:
            continue
        try:
            return json.loads('"' + m.group(2) + '"'), True
        except ValueError:
            break
    return "", False


def get(tag: str, key: str) -> str:
    return lookup(tag, key)[0]


def uncapitalize(name: str) -> str:
    return name[:1].lower() + name[1:]


def is_optional(tag: str, fmt: str) -> bool:
    if get(tag, OPTIONAL_TAG) in OPTIONAL_VALUES:
        return True
    # Fields renamed to "-" are never encoded, so they cannot be required.
    return get(tag, fmt).startswith(OMIT_SENTINEL)


def encoded_name(tag: str, fmt: str, field_name: str) -> str:
    raw = get(tag, fmt)
    val = raw.split(",", 1)[0]
    # "-," names the key "-" itself.
    if val == OMIT_SENTINEL and raw != OMIT_SENTINEL:
        return val
    if val in ("", OMIT_SENTINEL):
        return uncapitalize(field_name)
    return val


def name_options(tag: str, fmt: str) -> FrozenSet[str]:
    parts = get(tag, fmt).split(",")
    return frozenset(p for p in parts[1:] if p)


def is_skipped(tag: str, fmt: str) -> bool:
    return get(tag, fmt) == OMIT_SENTINEL
