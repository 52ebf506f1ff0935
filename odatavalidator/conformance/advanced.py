"""
Advanced conformance level rules (OData Protocol section 13.1.3).

The batch rules send multipart/mixed bodies to ``$batch``. Bodies use
CRLF line endings throughout; boundaries are fixed so that reports are
comparable between runs.
"""

import json
import re
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from odatavalidator.engine.compose import compose, short_circuit
from odatavalidator.engine.rules import (
    AdvancedConformanceRule,
    CompositeRule,
    SkipRule,
)
from odatavalidator.engine.types import (
    CombinationPolicy,
    DependencyInfo,
    DependencyType,
    Outcome,
    RuleRelationship,
    ServiceType,
    Verdict,
)
from odatavalidator.service.context import ServiceContext
from odatavalidator.service.payload import (
    MetadataDocument,
    entity_set_urls,
    entry_url,
    feed_entries,
    parse_json,
)
from odatavalidator.service.web import ACCEPT_JSON, merge_headers

from .data import (
    construct_update,
    create_entity,
    delete_entity,
    has_generatable_key,
)
from .helpers import (
    verify_error,
    verify_feed_and_entry,
    verify_metadata,
    verify_service_document,
)

CRLF = "\r\n"
BATCH_BOUNDARY = "batch_36522ad7-fc75-4b56-8c71-56071383e77b"
CHANGESET_BOUNDARY = "changeset_77162fcd-b8da-41ac-a9f8-9357efbbd621"

SUPPORTED_CSDL_VERSIONS = ("4.0", "4.01")

_STATUS_LINE = re.compile(r"^HTTP/1\.1 (\d{3})", re.MULTILINE)
_CONTENT_ID = re.compile(r"^Content-ID:\s*(\S+)", re.MULTILINE | re.IGNORECASE)
_BOUNDARY = re.compile(r'boundary="?([^";\s]+)"?', re.IGNORECASE)


# =============================================================================
# BATCH BODIES
# =============================================================================


def request_part(
    method: str,
    url: str,
    headers: Sequence[Tuple[str, str]] = (),
    body: str = "",
    content_id: Optional[str] = None,
) -> List[str]:
    """Lines of one application/http part."""
    lines = ["Content-Type: application/http", "Content-Transfer-Encoding: binary"]
    if content_id is not None:
        lines.append(f"Content-ID: {content_id}")
    lines.append("")
    lines.append(f"{method} {url} HTTP/1.1")
    lines.extend(f"{name}: {value}" for name, value in headers)
    lines.append("")
    if body:
        lines.append(body)
    return lines


def changeset(parts: Sequence[List[str]], boundary: str = CHANGESET_BOUNDARY) -> List[str]:
    """Lines of a change set wrapping ``parts``."""
    lines = [f"Content-Type: multipart/mixed; boundary={boundary}", ""]
    for part in parts:
        lines.append(f"--{boundary}")
        lines.extend(part)
    lines.append(f"--{boundary}--")
    lines.append("")
    return lines


def batch_body(parts: Sequence[List[str]], boundary: str = BATCH_BOUNDARY) -> str:
    """A complete multipart/mixed batch body."""
    lines: List[str] = []
    for part in parts:
        lines.append(f"--{boundary}")
        lines.extend(part)
    lines.append(f"--{boundary}--")
    return CRLF.join(lines) + CRLF


def response_statuses(payload: str) -> List[int]:
    """Status codes of the parts of a batch response, in order."""
    return [int(code) for code in _STATUS_LINE.findall(payload or "")]


def response_content_ids(payload: str) -> List[str]:
    return _CONTENT_ID.findall(payload or "")


def response_boundary(content_type: str) -> str:
    """The ``boundary`` parameter of a multipart Content-Type, or empty."""
    match = _BOUNDARY.search(content_type or "")
    return match.group(1) if match else ""


def boundary_delimiters(payload: str, boundary: str) -> int:
    """Number of delimiter lines for ``boundary``, the closing delimiter included."""
    marker = f"--{boundary}"
    return sum(1 for line in (payload or "").splitlines() if line.startswith(marker))


# =============================================================================
# RULES
# =============================================================================


class A1001_IntermediateConformance(CompositeRule, AdvancedConformanceRule):
    """1. Reduced from the Intermediate level, including Intermediate.Conformance.1001."""

    @property
    def name(self) -> str:
        return "Advanced.Conformance.1001"

    @property
    def description(self) -> str:
        return "1. MUST conform to at least the OData Intermediate Conformance Level"

    @property
    def dependency_info(self) -> DependencyInfo:
        return DependencyInfo(CombinationPolicy.ALL_INTERMEDIATE, RuleRelationship.DERIVED_RULE)


class A1002_PublishMetadata(AdvancedConformanceRule):
    """
    2. MUST publish metadata at $metadata.

    The CSDL version is only checked once the document itself has been
    found to declare an entity container.
    """

    @property
    def name(self) -> str:
        return "Advanced.Conformance.1002"

    @property
    def description(self) -> str:
        return "2. MUST publish metadata at $metadata according to [OData-CSDL] (section 11.1.2)"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)
        url = context.url("$metadata")
        metadata: Optional[MetadataDocument] = None
        detail = None

        def published() -> Outcome:
            nonlocal metadata, detail
            response = context.web.get(url, headers=context.headers)
            detail = self._detail(url, "GET", merge_headers(None, context.request_headers), response)
            metadata = MetadataDocument.parse(response.payload)
            if metadata is None or not metadata.entity_container_names():
                return self._fail(detail.with_error("There is no EntityContainer in metadata document."))
            return self._pass(detail)

        def versioned() -> Outcome:
            if metadata.version not in SUPPORTED_CSDL_VERSIONS:
                return self._fail(detail.with_error(
                    f"The Edmx Version is {metadata.version!r}, which should be one of "
                    f"{', '.join(SUPPORTED_CSDL_VERSIONS)}."
                ))
            return self._pass(detail)

        return short_circuit([published, versioned], owner=self.name)


class A1003_JsonFormat(AdvancedConformanceRule):
    """3. MUST support the JSON format."""

    @property
    def name(self) -> str:
        return "Advanced.Conformance.1003"

    @property
    def description(self) -> str:
        return "3. MUST support the [OData-JSON] format."

    @property
    def dependency_type(self) -> DependencyType:
        return DependencyType.DEPENDENCY

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)
        return compose(self.name, [
            verify_service_document(context),
            verify_metadata(context),
            verify_error(context),
            verify_feed_and_entry(context),
        ])


class A1011_BatchRequests(CompositeRule, AdvancedConformanceRule):
    """11. Derived from the individual batch processing rules."""

    @property
    def name(self) -> str:
        return "Advanced.Conformance.1011"

    @property
    def description(self) -> str:
        return "11. MUST support batch requests (section11.7 and all subsections)"

    @property
    def service_type(self) -> ServiceType:
        return ServiceType.READ_WRITE

    @property
    def dependency_info(self) -> DependencyInfo:
        return DependencyInfo(
            CombinationPolicy.ALL_PASS,
            RuleRelationship.DERIVED_RULE,
            (
                "Advanced.Conformance.101101", "Advanced.Conformance.101102", "Advanced.Conformance.101103",
                "Advanced.Conformance.101106", "Advanced.Conformance.101107", "Advanced.Conformance.101108",
                "Advanced.Conformance.101109", "Advanced.Conformance.101110", "Advanced.Conformance.101111",
                "Advanced.Conformance.101117",
            ),
        )


class _BatchRule(AdvancedConformanceRule):
    """Base class for the rules derived into Advanced.Conformance.1011."""

    @property
    def service_type(self) -> ServiceType:
        return ServiceType.READ_WRITE

    def _batch(self, context: ServiceContext, body: str):
        response = context.web.batch(context.destination, body, BATCH_BOUNDARY, headers=context.headers)
        detail = self._detail(
            context.url("$batch"), "POST",
            merge_headers(None, list(context.request_headers) + [
                ("Content-Type", f"multipart/mixed; boundary={BATCH_BOUNDARY}"),
            ]),
            response, request_data=body,
        )
        return response, detail

    def _entity_url(self, context: ServiceContext) -> str:
        """URL of the first entry of the first entity set, or empty."""
        feeds = entity_set_urls(context.service_document)
        if not feeds:
            return ""
        response = context.web.get(context.url(feeds[0]) + "?$top=1", accept=ACCEPT_JSON, headers=context.headers)
        for entry in feed_entries(response.payload):
            url = entry_url(entry, context.destination)
            if url:
                return url
        return ""

    def _string_property_candidates(self, context: ServiceContext):
        metadata = context.metadata
        if metadata is None:
            return []
        return [
            (entity_set, prop)
            for entity_set, prop in metadata.entity_sets_with_property("Edm.String")
            if has_generatable_key(entity_set)
        ]


class A101101_BatchUrlFormats(_BatchRule):
    """
    1). Batch parts may address resources three ways; all must work.

    The first entry of the first entity set is requested by absolute URI,
    by absolute path with a Host header and by a path relative to the
    service root.
    """

    @property
    def name(self) -> str:
        return "Advanced.Conformance.101101"

    @property
    def description(self) -> str:
        return (
            "1). Services MUST support all three formats: Absolute URI with schema, host, port, "
            "and absolute resource path; Absolute resource path and separate Host header; "
            "Resource path relative to the batch request URI. (section 11.7.2)"
        )

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        entity_url = self._entity_url(context)
        if not entity_url:
            return self._inconclusive("Cannot find an entity to address in the batch requests.")

        parts = urlsplit(entity_url)
        absolute_path = parts.path + (f"?{parts.query}" if parts.query else "")
        root = context.destination + "/"
        if entity_url.startswith(root):
            relative_path = entity_url[len(root):]
        else:
            relative_path = absolute_path.lstrip("/")

        formats = [
            (request_part("GET", entity_url), ""),
            (request_part("GET", absolute_path, headers=[("Host", parts.netloc)]),
             f" and host : {parts.netloc}"),
            (request_part("GET", relative_path), f" and Batch request relative path : {relative_path}"),
        ]

        details = []
        for part, described in formats:
            response, detail = self._batch(context, batch_body([part]))
            if not response.payload:
                detail = detail.with_error(f"No response returned from above URI{described}.")
            elif "HTTP/1.1 200 OK" not in response.payload:
                detail = detail.with_error(f"Batch request failed by above URI{described}.")
            details.append(detail)

        if any(d.has_error for d in details):
            return self._fail(*details)
        return self._pass(*details)


class A101102_BatchProcessingOrder(_BatchRule):
    """2). The parts of a batch are processed in the order received."""

    @property
    def name(self) -> str:
        return "Advanced.Conformance.101102"

    @property
    def description(self) -> str:
        return "2). A service MUST process the components of the Batch in the order received. (section 11.7.4)"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        candidates = self._string_property_candidates(context)
        if not candidates:
            return self._inconclusive(
                "To verify this rule it expects an entity type with Int32/Int64/Int16/Guid/String key "
                "property and a normal property with string type, but there is no this entity type in "
                "metadata so can not verify this rule."
            )

        entity_set, prop = candidates[0]
        created = create_entity(context, entity_set)
        if not created.created:
            detail = self._detail(
                context.url(entity_set.name), "POST", merge_headers(ACCEPT_JSON, context.request_headers),
                created.response, request_data=created.request_data,
            )
            return self._fail(detail.with_error(
                f"Created entity failed for above URI with entity data {created.request_data}."
            ))

        try:
            return self._check_order(context, created, prop)
        finally:
            delete_entity(context, created)

    def _check_order(self, context, created, prop) -> Outcome:
        response = context.web.get(created.url, accept=ACCEPT_JSON, headers=context.headers)
        entity = parse_json(response.payload)
        if not isinstance(entity, dict):
            detail = self._detail(created.url, "GET", merge_headers(ACCEPT_JSON, context.request_headers), response)
            return self._outcome(Verdict.INCONCLUSIVE, [detail.with_error("Cannot read the created entity.")])

        data = json.dumps(construct_update(entity, [prop]))
        write_headers = [("Content-Type", ACCEPT_JSON)]
        if created.has_etag:
            write_headers.append(("If-Match", "*"))

        body = batch_body([
            changeset([
                request_part("PATCH", created.url, write_headers, data, content_id="1"),
                request_part("PATCH", created.url, write_headers, data, content_id="2"),
            ]),
            request_part("GET", created.url),
        ])
        response, detail = self._batch(context, body)

        if response.status_code != 200:
            return self._fail(detail.with_error("The OData service does not return a 200 OK HTTP status code."))
        if (response_content_ids(response.payload)[:2] != ["1", "2"]
                or response_statuses(response.payload) != [204, 204, 200]):
            return self._fail(detail.with_error("The requests in batch are not processed by order received."))
        return self._pass(detail)


class A101103_ChangeSetAtomicity(_BatchRule):
    """
    3). A change set is applied as a whole or not at all.

    The first change set holds an invalid PATCH (no Content-Type) followed
    by a valid one; the service must reject the change set as a unit. A
    GET and a DELETE in a second change set follow and must succeed.
    """

    @property
    def name(self) -> str:
        return "Advanced.Conformance.101103"

    @property
    def description(self) -> str:
        return (
            "3). All operations in a change set represent a single change unit so a service MUST "
            "successfully process and apply all the requests in the change set or else apply none "
            "of them. (section 11.7.4)"
        )

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        candidates = self._string_property_candidates(context)
        if not candidates:
            return self._inconclusive(
                "To verify this rule it expects an entity type with Int32/Int64/Int16/Guid/String key "
                "property and a normal property with string type, but there is no this entity type in "
                "metadata so can not verify this rule."
            )

        entity_set, prop = candidates[0]
        created = create_entity(context, entity_set)
        create_detail = self._detail(
            context.url(entity_set.name), "POST", merge_headers(ACCEPT_JSON, context.request_headers),
            created.response, request_data=created.request_data,
        )
        if not created.created:
            return self._fail(create_detail.with_error("Created the new entity failed for above URI."))

        try:
            return self._check_atomicity(context, created, prop, create_detail)
        finally:
            delete_entity(context, created)

    def _check_atomicity(self, context, created, prop, create_detail) -> Outcome:
        response = context.web.get(created.url, accept=ACCEPT_JSON, headers=context.headers)
        entity = parse_json(response.payload)
        if not isinstance(entity, dict):
            detail = self._detail(created.url, "GET", merge_headers(ACCEPT_JSON, context.request_headers), response)
            return self._outcome(Verdict.INCONCLUSIVE, [create_detail, detail.with_error("Cannot read the created entity.")])

        data = json.dumps(construct_update(entity, [prop]))
        etag = [("If-Match", "*")] if created.has_etag else []
        body = batch_body([
            changeset([
                request_part("PATCH", created.url, etag, data, content_id="1"),
                request_part("PATCH", created.url, [("Content-Type", ACCEPT_JSON)] + etag, data, content_id="2"),
            ]),
            request_part("GET", created.url),
            changeset([request_part("DELETE", created.url, etag, content_id="3")]),
        ])
        response, detail = self._batch(context, body)

        if response.status_code != 200:
            return self._fail(
                create_detail,
                detail.with_error("The OData service does not return a 200 OK HTTP status code."),
            )

        statuses = response_statuses(response.payload)
        content_ids = response_content_ids(response.payload)
        if (len(statuses) != 3 or not 400 <= statuses[0] < 500 or statuses[1:] != [200, 204]
                or content_ids != ["1", "3"]):
            return self._fail(create_detail, detail.with_error(
                "The change set was not rejected as a unit: expected a 4xx response for Content-ID 1, "
                f"200 for the GET and 204 for Content-ID 3, but got statuses {statuses} "
                f"with Content-IDs {content_ids}."
            ))
        return self._pass(create_detail, detail)


class A101107_BatchValidHeaders(_BatchRule):
    """5). A batch with valid request headers is answered with 200 OK."""

    @property
    def name(self) -> str:
        return "Advanced.Conformance.101107"

    @property
    def description(self) -> str:
        return (
            "5). If the set of request headers of a Batch request are valid the service MUST "
            "return a 200 OK HTTP response code. (section 11.7.4)"
        )

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        metadata = context.metadata
        candidates = [s for s in metadata.entity_sets() if has_generatable_key(s)] if metadata else []
        if not candidates:
            return self._inconclusive(
                "To verify this rule it expects an entity type with Int32/Int64/Int16/Guid/String key "
                "property, but there is no this entity type in metadata so can not verify this rule."
            )

        entity_set = candidates[0]
        created = create_entity(context, entity_set)
        create_detail = self._detail(
            context.url(entity_set.name), "POST", merge_headers(ACCEPT_JSON, context.request_headers),
            created.response, request_data=created.request_data,
        )
        if not created.created:
            return self._fail(create_detail.with_error(
                f"Created the new entity failed for above URI with entity data {created.request_data}."
            ))

        headers = [("If-Match", "*")] if created.has_etag else []
        body = batch_body([
            changeset([request_part("DELETE", created.url, headers, content_id="1")]),
        ])
        response, detail = self._batch(context, body)

        if response.status_code != 200:
            delete_entity(context, created)
            return self._fail(
                create_detail,
                detail.with_error("The OData service does not return a 200 OK HTTP status code."),
            )
        if 204 not in response_statuses(response.payload):
            delete_entity(context, created)
        return self._pass(create_detail, detail)


class A101110_BatchResponseStructure(_BatchRule):
    """
    8). A batch response has one part per part of the request.

    Two GET requests are sent, so the response must carry three boundary
    delimiters: one per part plus the closing one.
    """

    EXPECTED_DELIMITERS = 3

    @property
    def name(self) -> str:
        return "Advanced.Conformance.101110"

    @property
    def description(self) -> str:
        return (
            "8). Structurally, a batch response body MUST match one-to-one with the corresponding "
            "batch request body. (section 11.7.4)"
        )

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        entity_url = self._entity_url(context)
        if not entity_url:
            return self._inconclusive("Cannot find an entity to address in the batch request.")

        body = batch_body([request_part("GET", entity_url), request_part("GET", entity_url)])
        response, detail = self._batch(context, body)

        if not response.payload:
            return self._fail(detail.with_error("Batch request failed: no response payload was returned."))

        # without a boundary parameter, fall back to the usual batchresponse_<id> prefix
        boundary = response_boundary(response.header("Content-Type")) or "batchresponse"
        found = boundary_delimiters(response.payload, boundary)
        if found != self.EXPECTED_DELIMITERS:
            return self._fail(detail.with_error(
                "The batch response body does not match one-to-one with the batch request body, "
                f"the batch request has {self.EXPECTED_DELIMITERS} batch separators, "
                f"but response has {found} batch separators."
            ))
        return self._pass(detail)


class _DeclaredBatchRule(SkipRule, AdvancedConformanceRule):
    """Batch rules that are catalogued but not probed."""

    @property
    def service_type(self) -> ServiceType:
        return ServiceType.READ_WRITE


class A101106_ContentIdReferences(_DeclaredBatchRule):
    @property
    def name(self) -> str:
        return "Advanced.Conformance.101106"

    @property
    def description(self) -> str:
        return (
            "4). A request in a change set MAY reference the result of an earlier request in the "
            "same change set by its Content-ID. (section 11.7.3.1)"
        )


class A101108_InvalidBatchHeaders(_DeclaredBatchRule):
    @property
    def name(self) -> str:
        return "Advanced.Conformance.101108"

    @property
    def description(self) -> str:
        return (
            "6). If the set of request headers of a Batch request are not valid the service MUST "
            "return a 4xx response code. (section 11.7.4)"
        )


class A101109_BatchResponseContentType(_DeclaredBatchRule):
    @property
    def name(self) -> str:
        return "Advanced.Conformance.101109"

    @property
    def description(self) -> str:
        return (
            "7). A response to a batch request MUST contain a Content-Type header with value "
            "multipart/mixed. (section 11.7.4)"
        )


class A101111_ChangeSetResponse(_DeclaredBatchRule):
    @property
    def name(self) -> str:
        return "Advanced.Conformance.101111"

    @property
    def description(self) -> str:
        return (
            "9). A response to a change set MUST be formatted as a multipart/mixed part with one "
            "response per request of the change set. (section 11.7.4)"
        )


class A101117_AsynchronousBatch(_DeclaredBatchRule):
    @property
    def name(self) -> str:
        return "Advanced.Conformance.101117"

    @property
    def description(self) -> str:
        return "15). Batch requests MAY be executed asynchronously. (section 11.7.5)"


def get_advanced_rules():
    """Return the Advanced conformance level rules in catalog order."""
    return [
        A1001_IntermediateConformance(),
        A1002_PublishMetadata(),
        A1003_JsonFormat(),
        A1011_BatchRequests(),
        A101101_BatchUrlFormats(),
        A101102_BatchProcessingOrder(),
        A101103_ChangeSetAtomicity(),
        A101106_ContentIdReferences(),
        A101107_BatchValidHeaders(),
        A101108_InvalidBatchHeaders(),
        A101109_BatchResponseContentType(),
        A101110_BatchResponseStructure(),
        A101111_ChangeSetResponse(),
        A101117_AsynchronousBatch(),
    ]
