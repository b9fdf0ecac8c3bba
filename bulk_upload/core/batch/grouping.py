"""Sequence grouping for uploaded entries."""

from typing import Any, Dict, List, Optional, Sequence

from bulk_upload.core.batch.models import SEQUENCE_FIELDS, IndexedEntry, SequenceGroup


def resolve_sequence_key(
    entry: Dict[str, Any], index: int, sequence_field: Optional[str] = None
) -> str:
    """Return the grouping key of an entry.

    Args:
        entry: Entry dictionary
        index: Position of the entry in the request (0-based)
        sequence_field: Explicit field to read instead of the defaults

    Returns:
        Sequence key as string, or ``NoSequence_<index>`` for a singleton group
    """
    fields = (sequence_field,) if sequence_field else SEQUENCE_FIELDS
    for name in fields:
        value = entry.get(name)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return f"NoSequence_{index}"


def group_by_sequence(
    entries: Sequence[Dict[str, Any]], sequence_field: Optional[str] = None
) -> List[SequenceGroup]:
    """Partition entries into sequence groups.

    Groups are ordered by first appearance of their key and keep input order
    inside each group.
    """
    buckets: Dict[str, List[IndexedEntry]] = {}
    for index, entry in enumerate(entries):
        key = resolve_sequence_key(entry, index, sequence_field)
        buckets.setdefault(key, []).append(IndexedEntry(entry_index=index, entry=entry))

    return [
        SequenceGroup(index=position, sequence_id=key, entries=tuple(items))
        for position, (key, items) in enumerate(buckets.items(), start=1)
    ]
