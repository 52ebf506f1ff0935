"""Shared fixtures: a fake service and contexts built against it."""

import pytest

from odatavalidator.engine.types import ServiceType
from odatavalidator.service.context import ServiceContext, build_context

from fakes import SERVICE_ROOT, FakeWeb, conforming_web


@pytest.fixture
def web():
    """A service that passes the read-only Minimal and Intermediate rules."""
    return conforming_web()


@pytest.fixture
def context(web):
    """Context built against ``web``; the start-up requests are forgotten."""
    ctx = build_context(SERVICE_ROOT, web, service_type=ServiceType.READ_ONLY)
    web.calls.clear()
    return ctx


@pytest.fixture
def write_context(web):
    """Read-write context over the same fake service."""
    ctx = build_context(SERVICE_ROOT, web, service_type=ServiceType.READ_WRITE)
    web.calls.clear()
    return ctx


@pytest.fixture
def bare_context():
    """Context with no documents over a service that answers 404 to everything."""
    return ServiceContext(service_root=SERVICE_ROOT, web=FakeWeb())

