"""
Test data for rules that write to the service.

Read-write rules insert a throwaway entity, probe it and delete it again.
The payloads are built from the entity set's shape in ``$metadata``.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from odatavalidator.service.context import ServiceContext
from odatavalidator.service.payload import (
    EntitySetInfo,
    ODATA_ETAG,
    entry_url,
    parse_json,
)
from odatavalidator.service.web import ACCEPT_JSON, Response

logger = logging.getLogger(__name__)

INSERT_DATA = "[OData Validation Tool] Inserted data"
UPDATE_DATA = "[OData Validation Tool] Updated data"

# Key property types the write rules know how to generate
KEY_TYPES = ("Edm.Int32", "Edm.Int16", "Edm.Int64", "Edm.Guid", "Edm.String")


def sample_value(edm_type: str, key: bool = False) -> Any:
    """A value of ``edm_type``; None when the type is not generated."""
    if edm_type == "Edm.String":
        return uuid.uuid4().hex[:12] if key else INSERT_DATA
    if edm_type in ("Edm.Int16", "Edm.Int32", "Edm.Int64"):
        return uuid.uuid4().int % 30000 + 1 if key else 1
    if edm_type == "Edm.Guid":
        return str(uuid.uuid4())
    if edm_type == "Edm.Boolean":
        return True
    if edm_type in ("Edm.Double", "Edm.Single", "Edm.Decimal"):
        return 1.5
    if edm_type == "Edm.DateTimeOffset":
        return "2000-01-01T00:00:00Z"
    if edm_type == "Edm.Date":
        return "2000-01-01"
    return None


def has_generatable_key(entity_set: EntitySetInfo) -> bool:
    return bool(entity_set.key_names) and all(
        entity_set.properties.get(name) in KEY_TYPES for name in entity_set.key_names
    )


def construct_entity(
    entity_set: EntitySetInfo,
    complex_types: Optional[Dict[str, Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """Build an insertable entity, including non-null complex properties."""
    complex_types = complex_types or {}
    entity: Dict[str, Any] = {}
    for name, prop_type in entity_set.properties.items():
        if prop_type in complex_types:
            inner = {
                inner_name: sample_value(inner_type)
                for inner_name, inner_type in complex_types[prop_type].items()
            }
            entity[name] = {k: v for k, v in inner.items() if v is not None}
            continue
        value = sample_value(prop_type, key=name in entity_set.key_names)
        if value is not None:
            entity[name] = value
    return entity


def construct_update(entity: Dict[str, Any], property_names: Iterable[str]) -> Dict[str, Any]:
    """Copy of ``entity`` without annotations, with the named properties set to UPDATE_DATA."""
    updated = {k: v for k, v in entity.items() if not k.startswith("@")}
    for name in property_names:
        updated[name] = UPDATE_DATA
    return updated


def key_predicate(entity_set: EntitySetInfo, entity: Dict[str, Any]) -> str:
    """
    Canonical key predicate of ``entity``, e.g. ``(7)`` or ``(ID=7,Code='a')``.

    Empty when a key value is missing from ``entity``.
    """
    literals = []
    for name in entity_set.key_names:
        if name not in entity:
            return ""
        value = entity[name]
        if entity_set.properties.get(name) == "Edm.String":
            value = "'" + str(value).replace("'", "''") + "'"
        literals.append((name, str(value)))
    if not literals:
        return ""
    if len(literals) == 1:
        return f"({literals[0][1]})"
    return "(" + ",".join(f"{name}={value}" for name, value in literals) + ")"


@dataclass(frozen=True)
class CreatedEntity:
    """An entity inserted by a rule."""

    response: Response
    request_data: str
    url: str = ""
    has_etag: bool = False

    @property
    def created(self) -> bool:
        return self.response.status_code == 201 and bool(self.url)


def create_entity(
    context: ServiceContext,
    entity_set: EntitySetInfo,
) -> CreatedEntity:
    """POST a generated entity to ``entity_set``."""
    complex_types = context.metadata.complex_types() if context.metadata else {}
    entity = construct_entity(entity_set, complex_types)
    data = json.dumps(entity)
    url = context.url(entity_set.name)

    response = context.web.post(url, data, content_type=ACCEPT_JSON, headers=context.headers)
    if response.status_code != 201:
        return CreatedEntity(response=response, request_data=data)

    payload = parse_json(response.payload)
    location = response.header("Location")
    if not location and isinstance(payload, dict):
        location = entry_url(payload, context.destination)
    if not location:
        predicate = key_predicate(entity_set, entity)
        if predicate:
            location = url + predicate
            logger.warning(
                "Entity created in %s has no Location header or @odata.id; addressing it as %s",
                entity_set.name, location,
            )
        else:
            logger.warning("Entity created in %s cannot be addressed and will not be deleted", entity_set.name)

    has_etag = bool(response.header("ETag")) or (
        isinstance(payload, dict) and ODATA_ETAG in payload
    )
    logger.debug("Created entity %s in %s", location or "(no location)", entity_set.name)
    return CreatedEntity(response=response, request_data=data, url=location, has_etag=has_etag)


def delete_entity(context: ServiceContext, entity: CreatedEntity) -> Optional[Response]:
    """Remove an entity created by ``create_entity``."""
    if not entity.url:
        return None
    headers = context.headers
    if entity.has_etag:
        headers["If-Match"] = "*"
    response = context.web.delete(entity.url, headers=headers)
    if not response.ok:
        logger.warning(
            "Could not delete test entity %s (status %s)",
            entity.url, response.status_code,
        )
    return response
