"""
Property path grammar for flat records.

A flat record maps property paths to scalar bytes. Paths are the one
bit-exact contract shared with any external reader of stored records:

    name                  top-level property
    address.city          '.' separates nested properties
    tags[0]               '[i]' is a positional list element
    attributes[color]     '[key]' is a map entry, raw key text
    items[3].name         segments compose

Invariants:
    - Map keys never contain ']' (the first ']' after '[' closes the segment)
    - List positions are ordered numerically, never lexically
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping

SEPARATOR = "."


def child(parent: str, name: str) -> str:
    """Path of a nested property."""
    return f"{parent}{SEPARATOR}{name}" if parent else name


def element(parent: str, segment: object) -> str:
    """Path of a list element or map entry."""
    return f"{parent}[{segment}]"


def has_prefix(paths: Iterable[str], prefix: str) -> bool:
    """Whether any path equals prefix or lies beneath it."""
    nested = prefix + SEPARATOR
    indexed = prefix + "["
    for path in paths:
        if path == prefix or path.startswith(nested) or path.startswith(indexed):
            return True
    return False


def element_segments(paths: Iterable[str], parent: str) -> Dict[str, str]:
    """Collect the bracketed segments directly beneath parent.

    Args:
        paths: Paths of a flat record
        parent: Path of a list or map property

    Returns:
        Mapping of raw segment text to the element's path, e.g. for parent
        'tags' and paths {'tags[0]', 'tags[1].name'} this returns
        {'0': 'tags[0]', '1': 'tags[1]'}
    """
    prefix = parent + "["
    segments: Dict[str, str] = {}
    for path in paths:
        if not path.startswith(prefix):
            continue
        close = path.find("]", len(prefix))
        if close < 0:
            continue
        rest = path[close + 1:]
        if rest and rest[0] not in (SEPARATOR, "["):
            continue
        segment = path[len(prefix):close]
        segments.setdefault(segment, path[:close + 1])
    return segments


def positional(segments: Mapping[str, str]) -> List[str]:
    """Element paths of list segments in numeric order.

    Non-numeric segments are not list positions and are skipped.
    """
    indexed = [
        (int(seg), path)
        for seg, path in segments.items()
        if seg.isascii() and seg.isdecimal()
    ]
    indexed.sort()
    return [path for _, path in indexed]
