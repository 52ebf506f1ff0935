"""
HTTP access to the service under test.

``WebHelper`` wraps a ``requests.Session``. Transport failures never
escape: they come back as a ``Response`` without a status code so that
rules can report them as evidence.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

import requests

from odatavalidator.engine.settings import ValidatorSettings

logger = logging.getLogger(__name__)

ACCEPT_JSON = "application/json"
ACCEPT_JSON_FULL_METADATA = "application/json;odata.metadata=full"
ACCEPT_JSON_MINIMAL_METADATA = "application/json;odata.metadata=minimal"
ACCEPT_XML = "application/xml"

ODATA_VERSION = "OData-Version"
ODATA_MAX_VERSION = "OData-MaxVersion"
CONTENT_TYPE = "Content-Type"


@dataclass(frozen=True)
class Response:
    """Status, headers and payload of one HTTP exchange."""

    status_code: Optional[int]
    headers: Dict[str, str] = field(default_factory=dict)
    payload: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    @property
    def received(self) -> bool:
        """A response arrived (any status)."""
        return self.status_code is not None

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    @property
    def content_type(self) -> str:
        return self.header(CONTENT_TYPE)

    def header_text(self) -> str:
        return "\r\n".join(f"{k}: {v}" for k, v in self.headers.items())


def merge_headers(accept: Optional[str], headers: Iterable[Tuple[str, str]] = ()) -> str:
    """Render request headers the way they are shown in result details."""
    lines = []
    if accept:
        lines.append(f"Accept: {accept}")
    for name, value in headers:
        if accept and name.lower() == "accept":
            continue
        lines.append(f"{name}: {value}")
    return "\r\n".join(lines)


class WebHelper:
    """
    Issues requests against the service under test.

    Usage:
        web = WebHelper(ValidatorSettings())
        response = web.get("https://host/service/", accept=ACCEPT_JSON)
    """

    def __init__(
        self,
        settings: Optional[ValidatorSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or ValidatorSettings()
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": self.settings.user_agent})

    def request(
        self,
        method: str,
        url: str,
        accept: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Response:
        """
        Send one request and capture the response.

        Returns:
            Response; ``status_code`` is None when the request could not
            be completed (connection error, timeout, invalid URL).
        """
        request_headers: Dict[str, str] = dict(headers or {})
        if accept:
            request_headers["Accept"] = accept
        if content_type:
            request_headers[CONTENT_TYPE] = content_type

        logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(
                method,
                url,
                headers=request_headers,
                data=data.encode("utf-8") if data is not None else None,
                timeout=self.settings.timeout,
                verify=self.settings.verify_tls,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            return Response(status_code=None, error=str(e))

        payload = resp.text or ""
        if len(payload) > self.settings.max_payload_size:
            logger.debug(
                "Truncating %d character payload from %s to %d",
                len(payload), url, self.settings.max_payload_size,
            )
            payload = payload[: self.settings.max_payload_size]

        return Response(
            status_code=resp.status_code,
            headers=dict(resp.headers),
            payload=payload,
        )

    def get(self, url: str, accept: Optional[str] = None,
            headers: Optional[Mapping[str, str]] = None) -> Response:
        return self.request("GET", url, accept=accept, headers=headers)

    def post(self, url: str, data: str, content_type: str = ACCEPT_JSON,
             headers: Optional[Mapping[str, str]] = None) -> Response:
        return self.request("POST", url, accept=ACCEPT_JSON, headers=headers,
                            data=data, content_type=content_type)

    def put(self, url: str, data: str, content_type: str = ACCEPT_JSON,
            headers: Optional[Mapping[str, str]] = None) -> Response:
        return self.request("PUT", url, accept=ACCEPT_JSON, headers=headers,
                            data=data, content_type=content_type)

    def patch(self, url: str, data: str, content_type: str = ACCEPT_JSON,
              headers: Optional[Mapping[str, str]] = None) -> Response:
        return self.request("PATCH", url, accept=ACCEPT_JSON, headers=headers,
                            data=data, content_type=content_type)

    def delete(self, url: str, headers: Optional[Mapping[str, str]] = None) -> Response:
        return self.request("DELETE", url, headers=headers)

    def batch(self, service_root: str, body: str, boundary: str,
              headers: Optional[Mapping[str, str]] = None) -> Response:
        """POST a multipart/mixed body to ``<service_root>/$batch``."""
        url = service_root.rstrip("/") + "/$batch"
        return self.request(
            "POST",
            url,
            headers=headers,
            data=body,
            content_type=f"multipart/mixed; boundary={boundary}",
        )

    def close(self) -> None:
        self.session.close()
