"""
Document assembly errors.

Raised by the mapping, grouping and assembly steps. Callers decide whether
an error skips a single record or aborts one encounter's document; none of
them is meant to abort sibling encounters in the same request.
"""
from typing import Iterable, Optional


class BundleAssemblyError(Exception):
    """Base class for errors raised while assembling a document bundle."""


class MappingError(BundleAssemblyError):
    """A domain record cannot be converted into a FHIR resource."""

    def __init__(self, field: str, source_id: Optional[str], message: Optional[str] = None):
        self.field = field
        self.source_id = source_id
        detail = message or f"missing required field '{field}'"
        super().__init__(f"Cannot map record {source_id or '<unknown>'}: {detail}")


class MissingContextError(BundleAssemblyError):
    """Organization configuration, patient or encounter could not be resolved."""


class GroupingError(BundleAssemblyError):
    """A record cannot be attributed to any encounter."""

    def __init__(self, source_id: Optional[str]):
        self.source_id = source_id
        super().__init__(f"Record {source_id or '<unknown>'} has no owning encounter")


class ReferenceIntegrityError(BundleAssemblyError):
    """A resource in the bundle references something that is not in the bundle."""

    def __init__(self, references: Iterable[str]):
        self.references = sorted(set(references))
        super().__init__(
            "Bundle contains dangling references: " + ", ".join(self.references)
        )
