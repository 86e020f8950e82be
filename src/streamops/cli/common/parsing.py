"""Parsing of repeated ``key=value`` CLI parameters."""

from typing import Iterable


def parse_options(pairs: Iterable[str]) -> dict[str, str]:
    """
    Build an engine parameter mapping from ``key=value`` strings.

    Later occurrences of a key override earlier ones.

    Raises:
        ValueError: If an entry is not in ``key=value`` form or has an empty key.
    """
    options: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid option '{pair}' (expected key=value)")
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid option '{pair}' (empty key)")
        options[key] = value.strip()
    return options
