"""Predicate pushdown planning."""

from sqloverlay.pushdown.extractor import ScopeExtractor, classify, conjuncts
from sqloverlay.pushdown.models import (
    EqualityEdge,
    JoinGraph,
    JoinKind,
    JoinStep,
    PredicateKind,
    PushablePredicate,
    PushdownDestination,
    SourceRef,
)
from sqloverlay.pushdown.optimizer import PredicateOptimizer, WarningCallback

__all__ = [
    "EqualityEdge",
    "JoinGraph",
    "JoinKind",
    "JoinStep",
    "PredicateKind",
    "PredicateOptimizer",
    "PushablePredicate",
    "PushdownDestination",
    "ScopeExtractor",
    "SourceRef",
    "WarningCallback",
    "classify",
    "conjuncts",
]
