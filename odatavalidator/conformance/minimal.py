"""
Minimal conformance level rules (OData Protocol section 13.1.1).

Each rule probes the service over HTTP and returns an Outcome whose
details record every request it issued. The read-write rules insert a
temporary entity and remove it again when they are done.
"""

import json
from typing import List

from odatavalidator.engine.rules import (
    CompositeRule,
    MinimalConformanceRule,
)
from odatavalidator.engine.types import (
    CombinationPolicy,
    DependencyInfo,
    Outcome,
    RequirementLevel,
    ResultDetail,
    RuleRelationship,
    ServiceType,
    Verdict,
)
from odatavalidator.service.context import ServiceContext
from odatavalidator.service.payload import (
    MetadataDocument,
    PayloadKind,
    error_message,
    parse_json,
    payload_kind,
)
from odatavalidator.service.web import (
    ACCEPT_JSON,
    ODATA_MAX_VERSION,
    ODATA_VERSION,
    merge_headers,
)

from .data import (
    UPDATE_DATA,
    construct_update,
    create_entity,
    delete_entity,
    has_generatable_key,
)

# Media type the service cannot know
UNDEFINED_ACCEPT = "odata/test"

MINIMAL_VERSION = 4.0


def _parse_version(value: str) -> float:
    """Parse an OData-Version header value such as ``4.0`` or ``4.01;``."""
    return float(value.strip().rstrip(";"))


class M1001_ServiceDocument(MinimalConformanceRule):
    """
    1. MUST publish a service document at the service root.

    The root is requested without an Accept header, so the service may
    answer in either JSON or XML.
    """

    @property
    def name(self) -> str:
        return "Minimal.Conformance.1001"

    @property
    def description(self) -> str:
        return "1. MUST publish a service document at the service root (section 11.1.1)"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        url = context.destination
        response = context.web.get(url, headers=context.headers)
        detail = self._detail(url, "GET", merge_headers(None, context.request_headers), response)

        if not response.received:
            return self._fail(detail.with_error("No response returned from above URI."))
        if payload_kind(response.payload) != PayloadKind.SERVICE_DOCUMENT:
            return self._fail(detail.with_error("The response is not service document."))
        return self._pass(detail)


class M1004_ODataVersionHeader(MinimalConformanceRule):
    """4. MUST return the appropriate OData-Version header."""

    @property
    def name(self) -> str:
        return "Minimal.Conformance.1004"

    @property
    def description(self) -> str:
        return "4. MUST return the appropriate OData-Version header (section 8.1.5)"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        url = context.destination
        response = context.web.get(url, accept=ACCEPT_JSON, headers=context.headers)
        detail = self._detail(url, "GET", merge_headers(ACCEPT_JSON, context.request_headers), response)

        if not response.received:
            return self._outcome(Verdict.INCONCLUSIVE, [detail.with_error("Cannot get response from above URI.")])

        header = response.header(ODATA_VERSION) or context.odata_version or ""
        if not header.strip():
            return self._fail(detail.with_error("Can not get the OData-Version header from response headers."))

        try:
            version = _parse_version(header)
        except ValueError:
            return self._fail(detail.with_error(
                f"The OData-Version header value {header!r} is not a version number."
            ))

        if version < MINIMAL_VERSION:
            return self._fail(detail.with_error(
                f"The OData version is {version} which should be not less than minimal version 4.0."
            ))
        return self._pass(detail)


class M100501_AcceptHeader(MinimalConformanceRule):
    """
    5.1. Accept header handling.

    Three probes, all evaluated:

    - an unknown media type is rejected with 415
    - Accept-Charset wins over a charset parameter in Accept
    - no charset parameter in Accept means none in Content-Type
    """

    @property
    def name(self) -> str:
        return "Minimal.Conformance.100501"

    @property
    def description(self) -> str:
        return "5.1. Accept (section 8.2.1)"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)
        url = context.destination
        details: List[ResultDetail] = []

        response = context.web.get(url, accept=UNDEFINED_ACCEPT, headers=context.headers)
        detail = self._detail(url, "GET", merge_headers(UNDEFINED_ACCEPT, context.request_headers), response)
        if response.status_code != 415:
            detail = detail.with_error(
                "The service does not return an correct result for unknown or unsupported format parameters."
            )
        details.append(detail)

        accept = ACCEPT_JSON + ";charset=utf-8"
        headers = context.headers_with(Accept_Charset="utf-16")
        response = context.web.get(url, accept=accept, headers=headers)
        detail = self._detail(url, "GET", merge_headers(accept, headers.items()), response)
        if response.status_code != 200:
            detail = detail.with_error(
                f"The service return an unexpected HTTP status code {response.status_code}."
            )
        elif "charset=utf-16" not in response.content_type.lower():
            detail = detail.with_error(
                "If a media type specified in the Accept header includes a charset format parameter "
                "and the request also contains an Accept-Charset header, then the Accept-Charset "
                "header MUST be used."
            )
        details.append(detail)

        response = context.web.get(url, accept=ACCEPT_JSON, headers=context.headers)
        detail = self._detail(url, "GET", merge_headers(ACCEPT_JSON, context.request_headers), response)
        if response.status_code != 200:
            detail = detail.with_error(
                f"The service return an unexpected HTTP status code {response.status_code}."
            )
        elif "charset=" in response.content_type.lower():
            detail = detail.with_error(
                "If the media type specified in the Accept header does not include a charset format "
                "parameter, then the Content-Type header of the response MUST NOT contain a charset "
                "format parameter."
            )
        details.append(detail)

        verdict = Verdict.FAIL if any(d.has_error for d in details) else Verdict.PASS
        return self._outcome(verdict, details)


class M100502_ODataMaxVersionHeader(MinimalConformanceRule):
    """5.2. The response version respects OData-MaxVersion."""

    @property
    def name(self) -> str:
        return "Minimal.Conformance.100502"

    @property
    def description(self) -> str:
        return "5.2. OData-MaxVersion (section 8.2.7)"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)
        url = context.destination

        headers = context.headers
        headers[ODATA_MAX_VERSION] = "4.0"
        response = context.web.get(url, accept=ACCEPT_JSON, headers=headers)
        first = self._detail(url, "GET", merge_headers(ACCEPT_JSON, headers.items()), response)

        if response.status_code == 200:
            header = response.header(ODATA_VERSION)
            try:
                version = _parse_version(header)
            except ValueError:
                return self._fail(first.with_error(
                    f"Parse value {header} of OData-Version to a number failed from response header"
                ))
            if version > 4.0:
                first = first.with_error(
                    f"The OData-Version is {version}, which should be less than or equal to "
                    f"the specified OData-MaxVersion 4.0."
                )
        else:
            first = first.with_error(
                f"Request failed with header '{ODATA_MAX_VERSION}: 4.0'. "
                f"The error is {error_message(response.payload)}."
            )

        headers[ODATA_MAX_VERSION] = "3.0"
        response = context.web.get(url, accept=ACCEPT_JSON, headers=headers)
        second = self._detail(url, "GET", merge_headers(ACCEPT_JSON, headers.items()), response)
        if response.status_code == 200:
            second = second.with_error(
                f"Request should failed because set '{ODATA_MAX_VERSION}:3.0' in request header "
                f"and the service is version 4.0."
            )

        details = (first, second)
        verdict = Verdict.FAIL if any(d.has_error for d in details) else Verdict.PASS
        return self._outcome(verdict, details)


class M100603_UnknownQueryOption(MinimalConformanceRule):
    """1). Services SHOULD fail requests with query options they do not understand."""

    @property
    def name(self) -> str:
        return "Minimal.Conformance.100603"

    @property
    def description(self) -> str:
        return (
            "1). Services SHOULD fail any request that contains query options that "
            "they not understand.(section 6.1)"
        )

    @property
    def requirement_level(self) -> RequirementLevel:
        return RequirementLevel.SHOULD

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        url = context.destination + "/?$find=*"
        response = context.web.get(url, headers=context.headers)
        detail = self._detail(url, "GET", merge_headers(None, context.request_headers), response)

        if not response.received:
            return self._fail(detail.with_error("No response returned from above URI."))
        if response.status_code == 200:
            return self._fail(detail.with_error(
                "Services SHOULD fail the above URI because it contains query options 'find' "
                "which services does not understand."
            ))
        return self._pass(detail)


class M1013_MetadataDocument(MinimalConformanceRule):
    """13. MAY publish metadata at $metadata."""

    @property
    def name(self) -> str:
        return "Minimal.Conformance.1013"

    @property
    def description(self) -> str:
        return "13. MAY publish metadata at $metadata according to [OData-CSDL] (section 11.1.2)"

    @property
    def requirement_level(self) -> RequirementLevel:
        return RequirementLevel.MAY

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        url = context.url("$metadata")
        response = context.web.get(url, headers=context.headers)
        detail = self._detail(url, "GET", merge_headers(None, context.request_headers), response)

        if not response.received:
            return self._fail(detail.with_error("No response returned from above URI."))

        metadata = MetadataDocument.parse(response.payload)
        if metadata is None:
            return self._fail(detail.with_error("The response is not a metadata document."))
        if not metadata.entity_container_names():
            return self._fail(detail.with_error("There is no EntityContainer in metadata document."))
        return self._pass(detail)


# =============================================================================
# INDIVIDUAL PROPERTY UPDATES
# =============================================================================


class M1026_PropertyUpdates(CompositeRule, MinimalConformanceRule):
    """26. Derived from PUT to a primitive property and PATCH to a complex property."""

    @property
    def name(self) -> str:
        return "Minimal.Conformance.1026"

    @property
    def description(self) -> str:
        return (
            "26. SHOULD support PUT and PATCH to an individual primitive (section 11.4.9.1) "
            "or complex (section 11.4.9.3) property (respectively)"
        )

    @property
    def requirement_level(self) -> RequirementLevel:
        return RequirementLevel.SHOULD

    @property
    def service_type(self) -> ServiceType:
        return ServiceType.READ_WRITE

    @property
    def dependency_info(self) -> DependencyInfo:
        return DependencyInfo(
            CombinationPolicy.ALL_PASS,
            RuleRelationship.DERIVED_RULE,
            ("Minimal.Conformance.102601", "Minimal.Conformance.102602"),
        )


class _PropertyUpdateRule(MinimalConformanceRule):
    """Shared plumbing for the rules that write a single property."""

    @property
    def requirement_level(self) -> RequirementLevel:
        return RequirementLevel.SHOULD

    @property
    def service_type(self) -> ServiceType:
        return ServiceType.READ_WRITE

    def _write_headers(self, context: ServiceContext, has_etag: bool):
        headers = context.headers
        if has_etag:
            headers["If-Match"] = "*"
        return headers


class M102601_PutPrimitiveProperty(_PropertyUpdateRule):
    """1). PUT a new value to a non-key string property and read it back."""

    @property
    def name(self) -> str:
        return "Minimal.Conformance.102601"

    @property
    def description(self) -> str:
        return "1). SHOULD support PUT to an individual primitive (section 11.4.9.1) property"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        metadata = context.metadata
        candidates = []
        if metadata is not None:
            candidates = [
                (entity_set, prop)
                for entity_set, prop in metadata.entity_sets_with_property("Edm.String")
                if has_generatable_key(entity_set)
            ]
        if not candidates:
            return self._inconclusive(
                "To verify this rule it expects an entity type with a non-key string property, "
                "but there is no this entity type in metadata so cannot verify this rule."
            )

        entity_set, prop = candidates[0]
        created = create_entity(context, entity_set)
        details = [self._detail(
            context.url(entity_set.name), "POST", merge_headers(ACCEPT_JSON, context.request_headers),
            created.response, request_data=created.request_data,
        )]
        if not created.created:
            details[0] = details[0].with_error("Created the new entity failed for above URI.")
            return self._fail(*details)

        try:
            return self._put_and_check(context, created, prop, details)
        finally:
            delete_entity(context, created)

    def _put_and_check(self, context, created, prop, details) -> Outcome:
        url = created.url.rstrip("/") + "/" + prop
        headers = self._write_headers(context, created.has_etag)
        data = json.dumps({"value": UPDATE_DATA})

        response = context.web.put(url, data, headers=headers)
        put_detail = self._detail(
            url, "PUT", merge_headers(ACCEPT_JSON, headers.items()), response, request_data=data,
        )
        if response.status_code not in (200, 204):
            details.append(put_detail.with_error("Update primitive property in the created entity failed."))
            return self._fail(*details)
        details.append(put_detail)

        response = context.web.get(url, accept=ACCEPT_JSON, headers=context.headers)
        get_detail = self._detail(url, "GET", merge_headers(ACCEPT_JSON, context.request_headers), response)
        doc = parse_json(response.payload)
        if not isinstance(doc, dict) or "value" not in doc:
            details.append(get_detail.with_error(f"Can not get the value of {prop} property after PUT it."))
            return self._fail(*details)
        if doc["value"] != UPDATE_DATA:
            details.append(get_detail.with_error(f"The value of {prop} property is not updated by {url}."))
            return self._fail(*details)

        details.append(get_detail)
        return self._pass(*details)


class M102602_PatchComplexProperty(_PropertyUpdateRule):
    """2). PATCH a string member of a complex property and read it back."""

    @property
    def name(self) -> str:
        return "Minimal.Conformance.102602"

    @property
    def description(self) -> str:
        return "2). SHOULD support PATCH to a complex (section 11.4.9.3) property"

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)

        metadata = context.metadata
        candidates = []
        if metadata is not None:
            candidates = [
                triple for triple in metadata.entity_sets_with_complex_property("Edm.String")
                if has_generatable_key(triple[0])
            ]
        if not candidates:
            return self._inconclusive(
                "To verify this rule it expects complex type containing a property with string type, "
                "but there is no this complex type in metadata so cannot verify this rule."
            )

        entity_set, complex_prop, inner_prop = candidates[0]
        created = create_entity(context, entity_set)
        details = [self._detail(
            context.url(entity_set.name), "POST", merge_headers(ACCEPT_JSON, context.request_headers),
            created.response, request_data=created.request_data,
        )]
        if not created.created:
            details[0] = details[0].with_error("Created the new entity failed for above URI.")
            return self._fail(*details)

        try:
            return self._patch_and_check(context, created, complex_prop, inner_prop, details)
        finally:
            delete_entity(context, created)

    def _patch_and_check(self, context, created, complex_prop, inner_prop, details) -> Outcome:
        url = created.url.rstrip("/") + "/" + complex_prop

        response = context.web.get(url, accept=ACCEPT_JSON, headers=context.headers)
        get_detail = self._detail(url, "GET", merge_headers(ACCEPT_JSON, context.request_headers), response)
        if response.status_code == 204:
            details.append(get_detail.with_error("The value of property with complex type is null."))
            return self._outcome(Verdict.INCONCLUSIVE, details)
        if response.status_code != 200:
            details.append(get_detail.with_error("Get complex property in the created entity failed."))
            return self._fail(*details)
        details.append(get_detail)

        current = parse_json(response.payload)
        data = json.dumps(construct_update(current if isinstance(current, dict) else {}, [inner_prop]))
        headers = self._write_headers(context, created.has_etag)
        response = context.web.patch(url, data, headers=headers)
        patch_detail = self._detail(
            url, "PATCH", merge_headers(ACCEPT_JSON, headers.items()), response, request_data=data,
        )
        if response.status_code != 204:
            details.append(patch_detail.with_error("Update complex property in the created entity failed."))
            return self._fail(*details)
        details.append(patch_detail)

        response = context.web.get(url, accept=ACCEPT_JSON, headers=context.headers)
        check_detail = self._detail(url, "GET", merge_headers(ACCEPT_JSON, context.request_headers), response)
        doc = parse_json(response.payload)
        if not isinstance(doc, dict):
            details.append(check_detail.with_error("Can not get complex property after Patch it."))
            return self._fail(*details)
        if inner_prop not in doc:
            details.append(check_detail.with_error(
                f"Can not get the value of {inner_prop} property in complex property {url}."
            ))
            return self._fail(*details)
        if doc[inner_prop] != UPDATE_DATA:
            details.append(check_detail.with_error(
                f"The value of {inner_prop} property in complex is not updated by {url}."
            ))
            return self._fail(*details)

        details.append(check_detail)
        return self._pass(*details)


def get_minimal_rules():
    """Return the Minimal conformance level rules in catalog order."""
    return [
        M1001_ServiceDocument(),
        M1004_ODataVersionHeader(),
        M100501_AcceptHeader(),
        M100502_ODataMaxVersionHeader(),
        M100603_UnknownQueryOption(),
        M1013_MetadataDocument(),
        M1026_PropertyUpdates(),
        M102601_PutPrimitiveProperty(),
        M102602_PatchComplexProperty(),
    ]
