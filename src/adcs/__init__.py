"""
ADCS: Adaptor graph execution for blockchain-consumable AI outputs.

Providers call external inference sources; Adaptors aggregate, reason over
and format upstream outputs. This package executes declared graphs of both
in dependency order and hands the terminal value to a settlement layer.
"""

__version__ = "0.1.0"
