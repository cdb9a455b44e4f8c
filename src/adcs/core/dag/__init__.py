# src/adcs/core/dag/__init__.py
"""DAG (Directed Acyclic Graph) model for adaptor graphs.

Package re-exports for the graph model and its validation error.
"""

from adcs.contracts.errors import GraphValidationError
from adcs.core.dag.graph import AdaptorGraph

__all__ = [
    "AdaptorGraph",
    "GraphValidationError",
]
