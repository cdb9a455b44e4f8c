# tests/property/__init__.py
"""Property-based tests for the adaptor graph engine.

Property-based testing validates invariants that must hold for ALL inputs,
not just the specific examples we think of: plan ordering on arbitrary
DAGs, aggregation bounds and weight-scale invariance, lossless numeric
encodings.
"""
