"""Checker contract, registry, and the built-in checkers.

``DEFAULT_CHECKER_REGISTRY`` is the explicit registration table of every
built-in checker; adding a checker means adding a line here.
"""

from esync_audit.checkers.acl_checker import AclChecker
from esync_audit.checkers.base import (
    Checker,
    CheckerContext,
    CheckerFactory,
    CheckerRegistration,
    CheckerRegistry,
    run_checker,
)
from esync_audit.checkers.cardinality_checker import CardinalityChecker, TypeCardinalityChecker
from esync_audit.checkers.type_checker import TypeDocumentChecker


def build_default_registry() -> CheckerRegistry:
    registry = CheckerRegistry()
    registry.register(AclChecker.name, AclChecker)
    registry.register(CardinalityChecker.name, CardinalityChecker)
    registry.register(TypeCardinalityChecker.name, TypeCardinalityChecker)
    registry.register(TypeDocumentChecker.name, TypeDocumentChecker)
    return registry


DEFAULT_CHECKER_REGISTRY = build_default_registry()

__all__ = [
    "DEFAULT_CHECKER_REGISTRY",
    "AclChecker",
    "CardinalityChecker",
    "Checker",
    "CheckerContext",
    "CheckerFactory",
    "CheckerRegistration",
    "CheckerRegistry",
    "TypeCardinalityChecker",
    "TypeDocumentChecker",
    "build_default_registry",
    "run_checker",
]
