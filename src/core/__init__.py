"""
Core library: Reusable, infrastructure-agnostic components.

Modules:
    auth        - Azure authentication (managed identity, SPN, default credential chain)
    resilience  - Retry with exponential backoff and error-classifier driven decisions
    logging     - Structured JSON logging with correlation context
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization helpers

Design Principles:
    - No dependencies on the export domain (inventory_export)
    - All modules are independently testable
    - Type hints throughout
"""

from .types import TokenProvider

__version__ = "0.1.0"

__all__ = [
    "TokenProvider",
]
