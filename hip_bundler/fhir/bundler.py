"""
FHIR Document Bundle Builder

Creates a FHIR Bundle (document type) whose first entry is the
Composition, followed by every resource the Composition references.
Resources are collected as a set union keyed by (resourceType, id), so a
practitioner authoring several orders is only added once.
"""
from typing import List, Dict, Any, Iterator, Tuple
from datetime import datetime
import json

from fhir.resources.R4B.bundle import Bundle, BundleEntry
from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.resource import Resource

from .context import OrgContext
from .errors import ReferenceIntegrityError
from .identity import identifier_for, resource_key


def resource_to_dict(resource: Resource) -> Dict[str, Any]:
    """Serialize a resource to a JSON-compatible dictionary."""
    return json.loads(resource.model_dump_json())


def bundle_to_dict(bundle: Bundle) -> Dict[str, Any]:
    """Serialize a bundle to a JSON-compatible dictionary."""
    return resource_to_dict(bundle)


def _walk_references(node: Any) -> Iterator[str]:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "reference" and isinstance(value, str):
                yield value
            else:
                yield from _walk_references(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_references(item)


def dangling_references(bundle: Bundle) -> List[str]:
    """
    List references in the bundle that do not resolve to one of its entries.

    Logical references (identifier only, no ``reference`` string) are not
    checked.
    """
    entries = bundle.entry or []
    present = {
        f"{entry.resource.get_resource_type()}/{entry.resource.id}"
        for entry in entries
    }
    dangling = []
    for entry in entries:
        for reference in _walk_references(resource_to_dict(entry.resource)):
            if reference not in present and reference not in dangling:
                dangling.append(reference)
    return dangling


class DocumentBundler:
    """
    Assembles one encounter's resources into a document Bundle.

    Usage:
        bundler = DocumentBundler(org)
        bundler.add_resource(encounter)
        bundler.add_resources(practitioners)
        bundle = bundler.build(composition, "PR-42", encounter_time)
    """

    def __init__(self, org: OrgContext):
        """Initialize the bundler."""
        self.org = org
        self._resources: Dict[Tuple[str, str], Resource] = {}

    def add_resource(self, resource: Resource) -> bool:
        """
        Add a resource unless one with the same identity is already present.

        Args:
            resource: FHIR resource to add

        Returns:
            True if the resource was added, False if it was a duplicate
        """
        key = resource_key(resource)
        if key in self._resources:
            return False
        self._resources[key] = resource
        return True

    def add_resources(self, resources: List[Resource]) -> int:
        """
        Add multiple resources to the bundle.

        Returns:
            Number of resources actually added
        """
        return sum(1 for resource in resources if self.add_resource(resource))

    def contains(self, resource: Resource) -> bool:
        return resource_key(resource) in self._resources

    def build(self, composition: Composition, document_id: str, timestamp: datetime) -> Bundle:
        """
        Build the final document Bundle.

        Args:
            composition: Root Composition, always the first entry
            document_id: Deterministic id of the document
            timestamp: Clinical timestamp of the document (encounter time)

        Returns:
            FHIR Bundle of type document

        Raises:
            ReferenceIntegrityError: If any reference points outside the bundle
        """
        resources = [composition] + [
            resource for key, resource in self._resources.items()
            if key != resource_key(composition)
        ]
        entries = [
            BundleEntry(
                fullUrl=f"{resource.get_resource_type()}/{resource.id}",
                resource=resource
            )
            for resource in resources
        ]

        bundle = Bundle(
            id=document_id,
            identifier=identifier_for(self.org, "bundle", document_id),
            meta={"lastUpdated": timestamp},
            type="document",
            timestamp=timestamp,
            entry=entries
        )

        dangling = dangling_references(bundle)
        if dangling:
            raise ReferenceIntegrityError(dangling)

        return bundle

    @property
    def resource_count(self) -> int:
        """Number of resources collected, excluding the composition."""
        return len(self._resources)

    def get_resource_types(self) -> List[str]:
        """Get list of resource types in insertion order."""
        return [resource_type for resource_type, _ in self._resources]

    def clear(self) -> None:
        """Clear all collected resources."""
        self._resources = {}
