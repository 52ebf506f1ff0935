"""
Shared verification helpers.

Each helper probes one kind of resource and returns an Outcome whose
details are not yet owned by any rule; the rule that calls it re-tags
them through ``compose``.
"""

from typing import Optional

from odatavalidator.engine.types import Outcome, ResultDetail, Verdict
from odatavalidator.service.context import ServiceContext
from odatavalidator.service.payload import (
    PayloadKind,
    entity_set_urls,
    entry_url,
    feed_entries,
    payload_kind,
)
from odatavalidator.service.web import (
    ACCEPT_JSON,
    ACCEPT_JSON_FULL_METADATA,
    Response,
    merge_headers,
)


def probe_detail(
    context: ServiceContext,
    url: str,
    response: Optional[Response],
    accept: Optional[str] = None,
    method: str = "GET",
    error: str = "",
) -> ResultDetail:
    """Unowned detail for a request sent with the context's headers."""
    return ResultDetail.from_response(
        "", url, method, merge_headers(accept, context.request_headers), response,
        error_message=error,
    )


def _verdict(detail: ResultDetail) -> Outcome:
    return Outcome(Verdict.FAIL if detail.has_error else Verdict.PASS, (detail,))


def verify_service_document(context: ServiceContext) -> Outcome:
    """The service root returns a service document."""
    url = context.destination
    response = context.web.get(url, accept=ACCEPT_JSON, headers=context.headers)
    if response.status_code != 200:
        error = "Get service document failed from above URI."
    elif payload_kind(response.payload) != PayloadKind.SERVICE_DOCUMENT:
        error = "The response is not a service document."
    else:
        error = ""
    return _verdict(probe_detail(context, url, response, ACCEPT_JSON, error=error))


def verify_metadata(context: ServiceContext) -> Outcome:
    """``$metadata`` returns a metadata document."""
    url = context.url("$metadata")
    response = context.web.get(url, headers=context.headers)
    error = ""
    if payload_kind(response.payload) != PayloadKind.METADATA:
        error = "The response is not a metadata document."
    return _verdict(probe_detail(context, url, response, error=error))


def verify_error(context: ServiceContext) -> Outcome:
    """A request for an entity set that does not exist returns an error payload."""
    feeds = entity_set_urls(context.service_document)
    missing = "foo"
    while missing in feeds:
        missing += "o"

    url = context.url(missing)
    response = context.web.get(url, accept=ACCEPT_JSON_FULL_METADATA, headers=context.headers)
    error = ""
    if payload_kind(response.payload) != PayloadKind.ERROR:
        error = "The response is not an error response."
    return _verdict(probe_detail(context, url, response, ACCEPT_JSON_FULL_METADATA, error=error))


def verify_feed_and_entry(context: ServiceContext) -> Outcome:
    """The first entity set returns a feed, and its first entry returns an entry."""
    feeds = entity_set_urls(context.service_document)
    if not feeds:
        detail = ResultDetail(error_message="There is no feed instance.")
        return Outcome(Verdict.FAIL, (detail,))

    feed_url = context.url(feeds[0]) + "?$top=1"
    response = context.web.get(feed_url, accept=ACCEPT_JSON_FULL_METADATA, headers=context.headers)
    feed_detail = probe_detail(context, feed_url, response, ACCEPT_JSON_FULL_METADATA)

    if payload_kind(response.payload) != PayloadKind.FEED:
        return Outcome(Verdict.FAIL, (feed_detail.with_error("The response is not a feed response."),))

    entries = [
        url for url in (entry_url(e, context.destination) for e in feed_entries(response.payload))
        if url
    ]
    if not entries:
        return Outcome(Verdict.FAIL, (feed_detail.with_error("There is no entry instance."),))

    entry_response = context.web.get(entries[0], accept=ACCEPT_JSON, headers=context.headers)
    error = ""
    if payload_kind(entry_response.payload) != PayloadKind.ENTRY:
        error = "The response is not entry response."
    entry_detail = probe_detail(context, entries[0], entry_response, ACCEPT_JSON, error=error)

    verdict = Verdict.FAIL if error else Verdict.PASS
    return Outcome(verdict, (feed_detail, entry_detail))
