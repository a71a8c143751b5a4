"""
Encounter grouping.

One exchanged document corresponds to exactly one clinical encounter, so
records are partitioned by the encounter's stable uuid before assembly.
"""
import logging
from typing import Dict, Iterable, List

from .errors import GroupingError
from .records import DomainRecord

logger = logging.getLogger(__name__)


def encounter_key(record: DomainRecord) -> str:
    """
    Grouping key of a record: its owning encounter's uuid.

    Raises:
        GroupingError: If the record has no attributable encounter
    """
    key = record.encounter_uuid
    if not key:
        raise GroupingError(record.source_id)
    return key


def group_by_encounter(records: Iterable[DomainRecord]) -> Dict[str, List[DomainRecord]]:
    """
    Partition records by owning encounter.

    Groups keep first-seen encounter order and, inside a group, input
    order. Records that cannot be attributed to an encounter are skipped.

    Args:
        records: Domain records in source order

    Returns:
        Mapping of encounter uuid to that encounter's records
    """
    groups: Dict[str, List[DomainRecord]] = {}
    for record in records:
        try:
            key = encounter_key(record)
        except GroupingError as e:
            logger.warning("Skipping record: %s", e)
            continue
        groups.setdefault(key, []).append(record)

    if groups:
        logger.debug(
            "Grouped records into %d encounter(s): %s",
            len(groups),
            {key: len(group) for key, group in groups.items()}
        )
    return groups
