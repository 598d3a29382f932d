"""Entity exporters: one per inventory entity type."""

from inventory_export.exporters.base import EntityExporter, ExportContext, FanOutExporter
from inventory_export.exporters.directory import (
    GroupsExporter,
    MembershipsExporter,
    UsersExporter,
)
from inventory_export.exporters.plan import SUBSCRIPTION_PLAN, TENANT_PLAN, plan_for
from inventory_export.exporters.resources import (
    ChildResourcesExporter,
    ResourceGroupsExporter,
    ResourcesExporter,
    SubscriptionExporter,
)

__all__ = [
    "EntityExporter",
    "ExportContext",
    "FanOutExporter",
    "UsersExporter",
    "GroupsExporter",
    "MembershipsExporter",
    "SubscriptionExporter",
    "ResourceGroupsExporter",
    "ResourcesExporter",
    "ChildResourcesExporter",
    "TENANT_PLAN",
    "SUBSCRIPTION_PLAN",
    "plan_for",
]
