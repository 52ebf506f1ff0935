"""
OData Validator: protocol conformance checking for OData services.

A catalog of independent rules probes a live service over HTTP. Composite
rules derive their verdict from other rules, so a single conformance
statement reports one verdict together with every probe behind it.
"""

__version__ = "0.1.0"
