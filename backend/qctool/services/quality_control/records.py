"""Helpers for PDM description batches."""
from typing import Any, Dict, List, Mapping


def filter_descriptions(descriptions: Mapping[Any, Any]) -> Dict[str, str]:
    """Trim descriptions and drop blank ones. Keys are coerced to str."""
    filtered: Dict[str, str] = {}
    for pdm_num, text in descriptions.items():
        trimmed = str(text).strip()
        if trimmed:
            filtered[str(pdm_num)] = trimmed
    return filtered


def chunk_records(records: Mapping[str, str], size: int) -> List[Dict[str, str]]:
    """
    Split records into ordered chunks of at most `size` entries.

    Keys and their order are preserved, so item identity survives chunking.
    """
    if size < 1:
        raise ValueError("chunk size must be positive")
    items = list(records.items())
    return [dict(items[start:start + size]) for start in range(0, len(items), size)]


def count_batches(record_count: int, size: int) -> int:
    """Number of chunks chunk_records() yields for record_count records."""
    return -(-record_count // size)
