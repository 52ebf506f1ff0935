"""
Payload inspection helpers.

Classifies response payloads (service document, metadata, feed, entry,
error) and reads the handful of CSDL facts the conformance rules need
from a ``$metadata`` document.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin


class PayloadKind(str, Enum):
    """What a response payload represents."""

    SERVICE_DOCUMENT = "serviceDocument"
    METADATA = "metadata"
    FEED = "feed"
    ENTRY = "entry"
    ERROR = "error"
    OTHER = "other"


ODATA_CONTEXT = "@odata.context"
ODATA_ID = "@odata.id"
ODATA_EDIT_LINK = "@odata.editLink"
ODATA_ETAG = "@odata.etag"


def parse_json(payload: Optional[str]) -> Any:
    """Parse JSON, returning None for empty or malformed input."""
    if not payload:
        return None
    try:
        return json.loads(payload)
    except ValueError:
        return None


def parse_xml(payload: Optional[str]) -> Optional[ET.Element]:
    """Parse XML, returning None for empty or malformed input."""
    if not payload:
        return None
    try:
        return ET.fromstring(payload)
    except ET.ParseError:
        return None


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


def payload_kind(payload: Optional[str]) -> PayloadKind:
    """Classify a JSON or XML payload."""
    doc = parse_json(payload)
    if isinstance(doc, dict):
        return _json_kind(doc)

    root = parse_xml(payload)
    if root is not None:
        return {
            "Edmx": PayloadKind.METADATA,
            "service": PayloadKind.SERVICE_DOCUMENT,
            "feed": PayloadKind.FEED,
            "entry": PayloadKind.ENTRY,
            "error": PayloadKind.ERROR,
        }.get(local_name(root.tag), PayloadKind.OTHER)

    return PayloadKind.OTHER


def _json_kind(doc: Dict[str, Any]) -> PayloadKind:
    if isinstance(doc.get("error"), dict):
        return PayloadKind.ERROR

    context = doc.get(ODATA_CONTEXT, "")
    value = doc.get("value")
    if isinstance(value, list):
        if context.endswith("$metadata") and all(
            isinstance(item, dict) and "url" in item for item in value
        ):
            return PayloadKind.SERVICE_DOCUMENT
        return PayloadKind.FEED

    if context or ODATA_ID in doc or ODATA_EDIT_LINK in doc:
        return PayloadKind.ENTRY
    return PayloadKind.OTHER


def error_message(payload: Optional[str]) -> str:
    """Extract the message of an OData JSON error payload."""
    doc = parse_json(payload)
    if isinstance(doc, dict) and isinstance(doc.get("error"), dict):
        message = doc["error"].get("message", "")
        if isinstance(message, dict):
            message = message.get("value", "")
        return str(message)
    return ""


def entity_set_urls(service_document: Optional[str]) -> List[str]:
    """Relative URLs of the entity sets listed in a JSON service document."""
    doc = parse_json(service_document)
    if not isinstance(doc, dict) or not isinstance(doc.get("value"), list):
        return []
    urls = []
    for item in doc["value"]:
        if not isinstance(item, dict) or "url" not in item:
            continue
        if item.get("kind", "EntitySet") == "EntitySet":
            urls.append(item["url"])
    return urls


def feed_entries(payload: Optional[str]) -> List[Dict[str, Any]]:
    """Entities contained in a JSON feed payload."""
    doc = parse_json(payload)
    if isinstance(doc, dict) and isinstance(doc.get("value"), list):
        return [e for e in doc["value"] if isinstance(e, dict)]
    return []


def entry_url(entry: Dict[str, Any], base_url: str) -> str:
    """Absolute URL of an entity from its id or edit link."""
    link = entry.get(ODATA_ID) or entry.get(ODATA_EDIT_LINK) or ""
    if not link:
        return ""
    return urljoin(base_url.rstrip("/") + "/", link)


# =============================================================================
# CSDL METADATA
# =============================================================================


@dataclass(frozen=True)
class EntitySetInfo:
    """An entity set together with the shape of its entity type."""

    name: str
    entity_type: str
    key_names: List[str] = field(default_factory=list)
    properties: Dict[str, str] = field(default_factory=dict)

    def non_key_properties(self, type_name: str) -> List[str]:
        return [
            name for name, prop_type in self.properties.items()
            if prop_type == type_name and name not in self.key_names
        ]


class MetadataDocument:
    """Read-only view over a parsed ``$metadata`` document."""

    def __init__(self, root: ET.Element):
        self.root = root

    @classmethod
    def parse(cls, payload: Optional[str]) -> Optional["MetadataDocument"]:
        root = parse_xml(payload)
        if root is None or local_name(root.tag) != "Edmx":
            return None
        return cls(root)

    @property
    def version(self) -> str:
        return self.root.get("Version", "")

    def _elements(self, name: str) -> List[ET.Element]:
        return [e for e in self.root.iter() if local_name(e.tag) == name]

    def entity_container_names(self) -> List[str]:
        return [e.get("Name", "") for e in self._elements("EntityContainer")]

    def _structured_types(self, kind: str) -> Dict[str, ET.Element]:
        types: Dict[str, ET.Element] = {}
        for schema in self._elements("Schema"):
            namespace = schema.get("Namespace", "")
            for child in schema:
                if local_name(child.tag) == kind:
                    name = child.get("Name", "")
                    types[f"{namespace}.{name}"] = child
                    types[name] = child
        return types

    def complex_types(self) -> Dict[str, Dict[str, str]]:
        """Complex type name -> {property name: type}."""
        return {
            name: _properties(element)
            for name, element in self._structured_types("ComplexType").items()
        }

    def entity_sets(self) -> List[EntitySetInfo]:
        entity_types = self._structured_types("EntityType")
        sets = []
        for element in self._elements("EntitySet"):
            type_name = element.get("EntityType", "")
            type_element = entity_types.get(type_name)
            if type_element is None:
                continue
            keys = [
                ref.get("Name", "")
                for ref in type_element.iter()
                if local_name(ref.tag) == "PropertyRef"
            ]
            sets.append(EntitySetInfo(
                name=element.get("Name", ""),
                entity_type=type_name,
                key_names=keys,
                properties=_properties(type_element),
            ))
        return sets

    def entity_sets_with_property(self, type_name: str) -> List[tuple]:
        """(entity set, property) pairs for non-key properties of ``type_name``."""
        pairs = []
        for entity_set in self.entity_sets():
            for prop in entity_set.non_key_properties(type_name):
                pairs.append((entity_set, prop))
        return pairs

    def entity_sets_with_complex_property(self, inner_type: str) -> List[tuple]:
        """
        (entity set, complex property, inner property) triples where the
        complex property's type declares a property of ``inner_type``.
        """
        complex_types = self.complex_types()
        triples = []
        for entity_set in self.entity_sets():
            for prop, prop_type in entity_set.properties.items():
                inner = complex_types.get(prop_type)
                if not inner:
                    continue
                for inner_name, inner_prop_type in inner.items():
                    if inner_prop_type == inner_type:
                        triples.append((entity_set, prop, inner_name))
                        break
        return triples


def _properties(element: ET.Element) -> Dict[str, str]:
    return {
        child.get("Name", ""): child.get("Type", "")
        for child in element
        if local_name(child.tag) == "Property"
    }
