"""
OData conformance rules.

Minimal, Intermediate and Advanced level rules, each probing a live
service. ``get_all_rules`` returns the whole catalog.
"""

from .catalog import build_registry, get_all_rules

__all__ = [
    "build_registry",
    "get_all_rules",
]
