"""
Organization context for one assembly run.

The org context is resolved once per request from configuration and then
passed, read-only, to every mapper and builder. Identifier systems for all
emitted resources are minted from its base URL.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError
from fhir.resources.R4B.identifier import Identifier
from fhir.resources.R4B.reference import Reference

from .errors import MissingContextError

logger = logging.getLogger(__name__)

_url_adapter = TypeAdapter(AnyHttpUrl)


@dataclass(frozen=True)
class OrgContext:
    """Immutable snapshot of the health facility publishing the documents."""
    organization_id: str
    name: str
    identifier_system: str
    base_url: str
    care_context_type: str = "Visit"

    def system_for(self, segment: str) -> str:
        """Identifier system for a resource type, e.g. ``https://hip.example.org/document``."""
        return f"{self.base_url.rstrip('/')}/{segment}"

    def organization_reference(self) -> Reference:
        """
        Logical reference to the organization.

        Organization is not emitted as a bundle entry, so the reference
        carries an identifier and display instead of a resource id.
        """
        ref = {"display": self.name or self.organization_id or None}
        if self.organization_id:
            identifier = {"value": self.organization_id}
            if self.identifier_system:
                identifier["system"] = self.identifier_system
            ref["identifier"] = Identifier(**identifier)
        return Reference(**ref)


def _validated_base_url(raw: Optional[str]) -> str:
    base_url = (raw or "").strip()
    if not base_url:
        raise MissingContextError("Organization base URL (hfr_url) is not configured")
    try:
        _url_adapter.validate_python(base_url)
    except ValidationError as e:
        raise MissingContextError(f"Organization base URL is malformed: {base_url!r}") from e
    return base_url


def resolve_org_context(settings) -> OrgContext:
    """
    Build the org context from application settings.

    Args:
        settings: Object exposing hfr_id, hfr_name, hfr_system, hfr_url
            and care_context_type

    Returns:
        OrgContext snapshot

    Raises:
        MissingContextError: If the base URL is unset or malformed
    """
    context = OrgContext(
        organization_id=(settings.hfr_id or "").strip(),
        name=(settings.hfr_name or "").strip(),
        identifier_system=(settings.hfr_system or "").strip(),
        base_url=_validated_base_url(settings.hfr_url),
        care_context_type=(settings.care_context_type or "Visit").strip(),
    )
    logger.debug("Resolved org context for %s (%s)", context.name, context.base_url)
    return context
