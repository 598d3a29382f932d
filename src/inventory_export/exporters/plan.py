"""Ordered exporter plans per unit kind."""

from inventory_export.config import ExportConfiguration, UnitKind
from inventory_export.exporters.base import EntityExporter
from inventory_export.exporters.directory import (
    GroupsExporter,
    MembershipsExporter,
    UsersExporter,
)
from inventory_export.exporters.resources import (
    ChildResourcesExporter,
    PolicyAssignmentsExporter,
    PolicyDefinitionsExporter,
    PolicyExemptionsExporter,
    ResourceGroupsExporter,
    ResourcesExporter,
    RoleAssignmentsExporter,
    RoleDefinitionsExporter,
    SecurityPricingsExporter,
    SubscriptionExporter,
)

ExporterClass = type[EntityExporter]

# Memberships depends on the group ids collected by Groups
TENANT_PLAN: tuple[ExporterClass, ...] = (UsersExporter, GroupsExporter, MembershipsExporter)

# (exporter, gating toggle or None for always-on); ChildResources must follow Resources
SUBSCRIPTION_PLAN: tuple[tuple[ExporterClass, str | None], ...] = (
    (SubscriptionExporter, "subscription_objects"),
    (ResourceGroupsExporter, "resource_group_details"),
    (ResourcesExporter, None),
    (ChildResourcesExporter, "include_child_resources"),
    (RoleDefinitionsExporter, "role_definitions"),
    (RoleAssignmentsExporter, "role_assignments"),
    (PolicyDefinitionsExporter, "policy_definitions"),
    (PolicyAssignmentsExporter, "policy_assignments"),
    (PolicyExemptionsExporter, "policy_exemptions"),
    (SecurityPricingsExporter, "security_center_subscriptions"),
)


def plan_for(kind: UnitKind, export: ExportConfiguration) -> list[ExporterClass]:
    """Exporter classes to run for a unit of the given kind, in order."""
    if kind == UnitKind.TENANT:
        return list(TENANT_PLAN)
    return [
        exporter
        for exporter, toggle in SUBSCRIPTION_PLAN
        if toggle is None or getattr(export, toggle)
    ]


__all__ = ["ExporterClass", "TENANT_PLAN", "SUBSCRIPTION_PLAN", "plan_for"]
