"""
Service context.

Everything a rule needs to probe the service under test: the service root,
the request headers supplied by the user, the HTTP helper and the service
and metadata documents fetched once at job start. A context is built per
job and passed to every rule; nothing here is process-global.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, Iterable, Mapping, Optional, Tuple

from odatavalidator.engine.types import ServiceType

from .payload import MetadataDocument
from .web import ACCEPT_JSON, ODATA_VERSION, Response, WebHelper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceContext:
    """Per-job view of the service under test."""

    service_root: str
    web: WebHelper
    request_headers: Tuple[Tuple[str, str], ...] = ()
    service_type: ServiceType = ServiceType.READ_WRITE
    odata_version: Optional[str] = None
    service_document: Optional[str] = None
    metadata_document: Optional[str] = None
    root_response: Optional[Response] = None
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not self.service_root:
            raise ValueError("service_root must be non-empty")
        if isinstance(self.request_headers, Mapping):
            object.__setattr__(self, "request_headers", tuple(self.request_headers.items()))

    @property
    def destination(self) -> str:
        """Service root without a trailing slash."""
        return self.service_root.rstrip("/")

    def url(self, *segments: str) -> str:
        """Join path segments onto the service root."""
        parts = [self.destination] + [s.strip("/") for s in segments if s]
        return "/".join(parts)

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.request_headers)

    def headers_with(self, **extra: str) -> Dict[str, str]:
        """Request headers plus ``extra`` (underscores become dashes)."""
        headers = self.headers
        for name, value in extra.items():
            headers[name.replace("_", "-")] = value
        return headers

    @cached_property
    def metadata(self) -> Optional[MetadataDocument]:
        return MetadataDocument.parse(self.metadata_document)

    @property
    def has_metadata(self) -> bool:
        return self.metadata is not None


def build_context(
    service_root: str,
    web: WebHelper,
    request_headers: Optional[Iterable[Tuple[str, str]]] = None,
    service_type: ServiceType = ServiceType.READ_WRITE,
) -> ServiceContext:
    """
    Fetch the service document and ``$metadata`` and build a context.

    Failures to fetch either document are logged; rules that need them
    report inconclusive outcomes on their own.
    """
    headers = tuple(request_headers or ())
    header_map = dict(headers)
    root = service_root.rstrip("/")

    root_response = web.get(root, accept=ACCEPT_JSON, headers=header_map)
    service_document = root_response.payload if root_response.ok else None
    if service_document is None:
        logger.warning(
            "Could not fetch service document from %s (status %s)",
            root, root_response.status_code,
        )

    metadata_response = web.get(root + "/$metadata", headers=header_map)
    metadata_document = metadata_response.payload if metadata_response.ok else None
    if metadata_document is None:
        logger.warning(
            "Could not fetch $metadata from %s (status %s)",
            root, metadata_response.status_code,
        )

    odata_version = root_response.header(ODATA_VERSION) or None

    context = ServiceContext(
        service_root=root,
        web=web,
        request_headers=headers,
        service_type=service_type,
        odata_version=odata_version,
        service_document=service_document,
        metadata_document=metadata_document,
        root_response=root_response,
    )
    logger.info(
        "Built context for %s (OData-Version %s, job %s)",
        root, odata_version or "unknown", context.job_id,
    )
    return context
