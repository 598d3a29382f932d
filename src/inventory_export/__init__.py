"""
Azure inventory export.

Exports Azure AD directory objects (users, groups, memberships) and Azure
Resource Manager inventory (subscriptions, resource groups, resources,
RBAC, policy, Defender pricing) to Event Hubs in size-bounded JSON batches.

Packages:
    batching   - Event envelopes and the size-aware batcher
    source     - Paged Graph/ARM fetcher
    transport  - Event Hubs REST transmitter and retrying batch sender
    exporters  - One exporter per entity type, plus per-unit plans

Entry points:
    run_export()               - Programmatic entry used by both triggers
    python -m inventory_export - Command line
"""

from inventory_export.coordinator import TriggerContext, run_export
from inventory_export.results import ExportResult, UnitExportResult, UnitState

__all__ = [
    "TriggerContext",
    "run_export",
    "ExportResult",
    "UnitExportResult",
    "UnitState",
]
