"""Access to the OData service under test."""

from .context import ServiceContext, build_context
from .payload import MetadataDocument, PayloadKind, payload_kind
from .web import Response, WebHelper, merge_headers

__all__ = [
    "MetadataDocument",
    "PayloadKind",
    "Response",
    "ServiceContext",
    "WebHelper",
    "build_context",
    "merge_headers",
    "payload_kind",
]
