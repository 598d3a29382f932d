"""
ARM exporters for subscription units.

The subscription object, resource groups, resources, child resources,
RBAC, policy and Defender pricing. Which of them run is decided by
ExportConfiguration (see exporters.plan); the resource group and resource
type filters are applied here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from inventory_export.exporters.base import EntityExporter, FanOutExporter
from inventory_export.source.fetcher import PagedFetcher

logger = logging.getLogger(__name__)

SUBSCRIPTION_API_VERSION = "2022-12-01"
RESOURCE_GROUPS_API_VERSION = "2021-04-01"
RESOURCES_API_VERSION = "2021-04-01"
AUTHORIZATION_API_VERSION = "2022-04-01"
POLICY_API_VERSION = "2023-04-01"
POLICY_EXEMPTIONS_API_VERSION = "2022-07-01-preview"
SECURITY_PRICINGS_API_VERSION = "2024-01-01"

RESOURCES_KEY = "resources"


@dataclass(frozen=True)
class ChildCollection:
    """Child collection path under a parent resource and its api-version."""

    path: str
    api_version: str


# Keyed by lowercased parent resource type
CHILD_COLLECTIONS: dict[str, tuple[ChildCollection, ...]] = {
    "microsoft.sql/servers": (ChildCollection("databases", "2021-11-01"),),
    "microsoft.web/sites": (ChildCollection("slots", "2022-03-01"),),
    "microsoft.network/virtualnetworks": (ChildCollection("subnets", "2023-04-01"),),
    "microsoft.compute/virtualmachines": (ChildCollection("extensions", "2023-03-01"),),
    "microsoft.storage/storageaccounts": (
        ChildCollection("blobServices/default/containers", "2023-01-01"),
    ),
    "microsoft.keyvault/vaults": (ChildCollection("privateEndpointConnections", "2023-07-01"),),
}


def resource_group_from_id(resource_id: Optional[str]) -> Optional[str]:
    """Resource group name from an ARM id, or None for subscription-level ids."""
    if not resource_id:
        return None
    parts = resource_id.strip("/").split("/")
    for index, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            return parts[index + 1]
    return None


class ArmExporter(EntityExporter):
    """Base for exporters reading from Azure Resource Manager."""

    @property
    def fetcher(self) -> PagedFetcher:
        if self.ctx.arm is None:
            raise RuntimeError(f"{self.entity_type} requires an ARM fetcher")
        return self.ctx.arm

    @property
    def subscription_url(self) -> str:
        return f"{self.ctx.config.source.management_endpoint}/subscriptions/{self.ctx.unit_id}"

    def emit_resource(self, record: dict[str, Any], parent_id: Optional[str] = None) -> None:
        self.emit(
            record,
            record_type=str(record.get("type") or self.entity_type),
            parent_id=parent_id,
            resource_group=resource_group_from_id(record.get("id")),
        )


class SubscriptionExporter(ArmExporter):
    entity_type = "Subscription"
    odata_context = "subscriptions"

    def export(self) -> None:
        record = self.fetcher.get_object(
            self.subscription_url, {"api-version": SUBSCRIPTION_API_VERSION}
        )
        record.setdefault("type", "Microsoft.Resources/subscriptions")
        self.emit_resource(record)
        self.metrics.processed += 1
        self.metrics.success += 1


class ArmCollectionExporter(ArmExporter):
    """Flat paged ARM collection under the subscription."""

    path = ""
    api_version = ""
    default_type = ""

    def params(self) -> dict[str, Any]:
        return {"api-version": self.api_version}

    def include(self, record: dict[str, Any]) -> bool:
        return True

    def export(self) -> None:
        url = f"{self.subscription_url}{self.path}"
        for record in self.fetcher.iter_items(url, self.params()):
            if not self.include(record):
                continue
            if self.default_type:
                record.setdefault("type", self.default_type)
            self.emit_resource(record)
            self.metrics.processed += 1
            self.metrics.success += 1
            self.maybe_report_progress(self.metrics.processed)


class ResourceGroupsExporter(ArmCollectionExporter):
    entity_type = "ResourceGroups"
    odata_context = "resourceGroups"
    path = "/resourcegroups"
    api_version = RESOURCE_GROUPS_API_VERSION
    default_type = "Microsoft.Resources/resourceGroups"

    def include(self, record: dict[str, Any]) -> bool:
        return self.ctx.config.export.allows_resource_group(record.get("name"))


class ResourcesExporter(ArmCollectionExporter):
    """Generic resource listing; records (id, type) for the child fan-out."""

    entity_type = "Resources"
    odata_context = "resources"
    path = "/resources"
    api_version = RESOURCES_API_VERSION

    def params(self) -> dict[str, Any]:
        return {"api-version": self.api_version, "$expand": "createdTime,changedTime"}

    def include(self, record: dict[str, Any]) -> bool:
        export = self.ctx.config.export
        if not export.allows_resource_type(record.get("type")):
            return False
        return export.allows_resource_group(resource_group_from_id(record.get("id")))

    def emit_resource(self, record: dict[str, Any], parent_id: Optional[str] = None) -> None:
        super().emit_resource(record, parent_id)
        if record.get("id") and record.get("type"):
            self.ctx.collected.setdefault(RESOURCES_KEY, []).append((record["id"], record["type"]))


class ChildResourcesExporter(FanOutExporter, ArmExporter):
    """
    Child collections of resources exported by ResourcesExporter.

    Parents are resources whose type has entries in CHILD_COLLECTIONS. Each
    parent counts once regardless of how many child collections it has.
    """

    entity_type = "ChildResources"
    odata_context = "childResources"

    def parents(self) -> list[tuple[str, str]]:
        return [
            (resource_id, resource_type)
            for resource_id, resource_type in self.ctx.collected.get(RESOURCES_KEY, [])
            if resource_type.lower() in CHILD_COLLECTIONS
        ]

    def parent_id(self, parent: tuple[str, str]) -> str:
        return parent[0]

    def export_parent(self, parent: tuple[str, str]) -> int:
        resource_id, resource_type = parent
        base = f"{self.ctx.config.source.management_endpoint}{resource_id}"
        count = 0
        for collection in CHILD_COLLECTIONS[resource_type.lower()]:
            url = f"{base}/{collection.path}"
            for record in self.fetcher.iter_items(url, {"api-version": collection.api_version}):
                self.emit_resource(record, parent_id=resource_id)
                count += 1
        return count


class RoleDefinitionsExporter(ArmCollectionExporter):
    entity_type = "RoleDefinitions"
    odata_context = "roleDefinitions"
    path = "/providers/Microsoft.Authorization/roleDefinitions"
    api_version = AUTHORIZATION_API_VERSION
    default_type = "Microsoft.Authorization/roleDefinitions"


class RoleAssignmentsExporter(ArmCollectionExporter):
    entity_type = "RoleAssignments"
    odata_context = "roleAssignments"
    path = "/providers/Microsoft.Authorization/roleAssignments"
    api_version = AUTHORIZATION_API_VERSION
    default_type = "Microsoft.Authorization/roleAssignments"


class PolicyDefinitionsExporter(ArmCollectionExporter):
    entity_type = "PolicyDefinitions"
    odata_context = "policyDefinitions"
    path = "/providers/Microsoft.Authorization/policyDefinitions"
    api_version = POLICY_API_VERSION
    default_type = "Microsoft.Authorization/policyDefinitions"


class PolicyAssignmentsExporter(ArmCollectionExporter):
    entity_type = "PolicyAssignments"
    odata_context = "policyAssignments"
    path = "/providers/Microsoft.Authorization/policyAssignments"
    api_version = POLICY_API_VERSION
    default_type = "Microsoft.Authorization/policyAssignments"


class PolicyExemptionsExporter(ArmCollectionExporter):
    entity_type = "PolicyExemptions"
    odata_context = "policyExemptions"
    path = "/providers/Microsoft.Authorization/policyExemptions"
    api_version = POLICY_EXEMPTIONS_API_VERSION
    default_type = "Microsoft.Authorization/policyExemptions"


class SecurityPricingsExporter(ArmCollectionExporter):
    """Defender for Cloud plan per resource type (pricing tier)."""

    entity_type = "SecurityCenterSubscriptions"
    odata_context = "securityPricings"
    path = "/providers/Microsoft.Security/pricings"
    api_version = SECURITY_PRICINGS_API_VERSION
    default_type = "Microsoft.Security/pricings"


__all__ = [
    "CHILD_COLLECTIONS",
    "RESOURCES_KEY",
    "ChildCollection",
    "resource_group_from_id",
    "ArmExporter",
    "ArmCollectionExporter",
    "SubscriptionExporter",
    "ResourceGroupsExporter",
    "ResourcesExporter",
    "ChildResourcesExporter",
    "RoleDefinitionsExporter",
    "RoleAssignmentsExporter",
    "PolicyDefinitionsExporter",
    "PolicyAssignmentsExporter",
    "PolicyExemptionsExporter",
    "SecurityPricingsExporter",
]
