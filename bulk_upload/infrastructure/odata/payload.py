"""Deep insert payloads for OData backends.

One sequence group becomes one POST: header fields at the top level and
every line under the items navigation property.
"""

from typing import Any, Dict, Optional, Sequence

from bulk_upload.core.batch.models import SEQUENCE_FIELDS


def strip_sequence_fields(entry: Dict[str, Any], sequence_field: Optional[str] = None) -> Dict[str, Any]:
    """Copy of ``entry`` without grouping keys (the backend does not know them)."""
    excluded = set(SEQUENCE_FIELDS)
    if sequence_field:
        excluded.add(sequence_field)
    return {key: value for key, value in entry.items() if key not in excluded}


def build_deep_insert_payload(
    entries: Sequence[Dict[str, Any]],
    items_property: Optional[str] = "to_Item",
    header_fields: Optional[Sequence[str]] = None,
    sequence_field: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the request body for one sequence group.

    Header fields are taken from the first line and removed from every item.
    Without ``header_fields`` every line keeps all of its fields. A single-line
    group without header fields, or a backend without an items property, is
    posted as a flat entity.

    Args:
        entries: Lines of one sequence group, in input order
        items_property: Navigation property holding the lines
        header_fields: Keys that belong to the document header
        sequence_field: Explicit sequence key to strip

    Returns:
        JSON-serializable payload

    Raises:
        ValueError: If entries is empty
    """
    if not entries:
        raise ValueError("Cannot build a payload for an empty group")

    lines = [strip_sequence_fields(entry, sequence_field) for entry in entries]

    if not items_property or (len(lines) == 1 and not header_fields):
        return dict(lines[0])

    header_keys = [key for key in header_fields or [] if key in lines[0]]

    payload = {key: lines[0][key] for key in header_keys}
    payload[items_property] = [
        {key: value for key, value in line.items() if key not in header_keys} for line in lines
    ]
    return payload
