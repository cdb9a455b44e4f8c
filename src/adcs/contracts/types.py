"""Semantic type aliases for compile-time type safety.

NewType creates distinct types that mypy treats as incompatible,
preventing accidental misuse of semantically different string values.
"""

from typing import NewType

NodeID = NewType("NodeID", str)
"""Globally unique node identifier (e.g., 'financial_provider', 'risk_adaptor')"""

RequestID = NewType("RequestID", str)
"""Originating settlement request identifier, echoed back on delivery"""

ModelName = NewType("ModelName", str)
"""Name under which a reasoning model is registered with the executor"""
