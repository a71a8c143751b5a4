"""
Resource identity and references.

Document ids are derived from the owning encounter so repeated exports of
the same encounter produce the same document id. Clinical resource ids come
from the source record uuid when there is one and are otherwise freshly
generated; they only need to be unique within one bundle.
"""
from typing import Optional, Tuple
import uuid

from fhir.resources.R4B.identifier import Identifier
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource

from .context import OrgContext
from .records import EncounterRecord


def generate_id() -> str:
    """Generate a unique resource ID."""
    return str(uuid.uuid4())


def resource_id(source_id: Optional[str]) -> str:
    """Use the source record's uuid as resource id, or mint a fresh one."""
    return source_id or generate_id()


def identifier_for(org: OrgContext, segment: str, value: str) -> Identifier:
    """Identifier namespaced under the organization's base URL."""
    return Identifier(system=org.system_for(segment), value=value)


def document_id(prefix: str, encounter: EncounterRecord) -> str:
    """
    Deterministic document id for an encounter, e.g. ``PR-42``.

    Falls back to the encounter uuid when the EMR did not supply a numeric id.
    """
    key = encounter.encounter_id if encounter.encounter_id is not None else encounter.uuid
    return f"{prefix}-{key}"


def resource_key(resource: Resource) -> Tuple[str, str]:
    """Logical identity of a resource inside one bundle."""
    return resource.get_resource_type(), resource.id


def _name_text(names) -> Optional[str]:
    if not names:
        return None
    return names[0].text


def display_for(resource: Resource) -> Optional[str]:
    """Human readable label used on references to ``resource``."""
    resource_type = resource.get_resource_type()

    if resource_type in ("Patient", "Practitioner"):
        return _name_text(resource.name)

    if resource_type == "MedicationRequest":
        if resource.medicationReference is not None:
            return resource.medicationReference.display
        if resource.medicationCodeableConcept is not None:
            return resource.medicationCodeableConcept.text
        return None

    if resource_type == "Encounter":
        if resource.type:
            return resource.type[0].text
        return "Encounter"

    if resource_type == "Composition":
        return resource.title

    code = getattr(resource, "code", None)
    if code is not None:
        return code.text
    return None


def reference_to(resource: Resource) -> Reference:
    """Reference to a resource that is (or will be) an entry of the same bundle."""
    return Reference(
        reference=f"{resource.get_resource_type()}/{resource.id}",
        display=display_for(resource)
    )
