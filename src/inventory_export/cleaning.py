"""
Read-only field removal per record type.

Each record type maps to a CleaningRule listing dotted field paths to
strip. Unmatched types fall back to DEFAULT_RULE. Cleaning never adds
fields and never fails the caller: on any internal error the original
record is returned unchanged and the error is logged.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleaningRule:
    """Fields to strip from one record type. Paths use dots for nesting."""

    remove: tuple[str, ...] = ()
    name: str = "default"

    def apply(self, record: dict[str, Any]) -> dict[str, Any]:
        cleaned = copy.deepcopy(record)
        for path in self.remove:
            _remove_path(cleaned, path.split("."))
        return cleaned


def _remove_path(node: Any, parts: list[str]) -> None:
    if not isinstance(node, dict) or not parts:
        return
    head, rest = parts[0], parts[1:]
    if not rest:
        node.pop(head, None)
        return
    _remove_path(node.get(head), rest)


_VOLATILE = ("etag", "properties.provisioningState")

DEFAULT_RULE = CleaningRule(remove=_VOLATILE)

# Keyed by lowercased resource type or directory entity kind
RULES: dict[str, CleaningRule] = {
    "user": CleaningRule(
        name="user",
        remove=("@odata.etag", "signInActivity", "refreshTokensValidFromDateTime"),
    ),
    "group": CleaningRule(name="group", remove=("@odata.etag", "renewedDateTime")),
    "membership": CleaningRule(name="membership", remove=("@odata.etag",)),
    "microsoft.resources/subscriptions": CleaningRule(
        name="subscription",
        remove=("etag", "subscriptionPolicies.spendingLimit"),
    ),
    "microsoft.resources/resourcegroups": CleaningRule(name="resourceGroup", remove=_VOLATILE),
    "microsoft.compute/virtualmachines": CleaningRule(
        name="virtualMachine",
        remove=_VOLATILE + ("properties.vmId", "properties.timeCreated", "resources"),
    ),
    "microsoft.compute/disks": CleaningRule(
        name="disk",
        remove=_VOLATILE + ("properties.diskState", "properties.uniqueId", "managedBy"),
    ),
    "microsoft.storage/storageaccounts": CleaningRule(
        name="storageAccount",
        remove=_VOLATILE
        + ("properties.primaryEndpoints", "properties.secondaryEndpoints", "properties.statusOfPrimary"),
    ),
    "microsoft.network/networkinterfaces": CleaningRule(
        name="networkInterface",
        remove=_VOLATILE + ("properties.resourceGuid", "properties.macAddress"),
    ),
    "microsoft.network/publicipaddresses": CleaningRule(
        name="publicIpAddress",
        remove=_VOLATILE + ("properties.resourceGuid", "properties.ipAddress"),
    ),
    "microsoft.web/sites": CleaningRule(
        name="webSite",
        remove=_VOLATILE + ("properties.lastModifiedTimeUtc", "properties.siteConfig", "properties.state"),
    ),
    "microsoft.keyvault/vaults": CleaningRule(name="keyVault", remove=_VOLATILE),
    "microsoft.authorization/roleassignments": CleaningRule(
        name="roleAssignment", remove=("properties.updatedOn", "properties.updatedBy")
    ),
    "microsoft.authorization/roledefinitions": CleaningRule(
        name="roleDefinition", remove=("properties.updatedOn", "properties.updatedBy")
    ),
    "microsoft.authorization/policyassignments": CleaningRule(
        name="policyAssignment", remove=("systemData",)
    ),
    "microsoft.authorization/policydefinitions": CleaningRule(
        name="policyDefinition", remove=("systemData",)
    ),
    "microsoft.authorization/policyexemptions": CleaningRule(
        name="policyExemption", remove=("systemData",)
    ),
    "microsoft.security/pricings": CleaningRule(
        name="securityPricing", remove=("properties.freeTrialRemainingTime",)
    ),
}


def rule_for(record_type: Optional[str], rules: Mapping[str, CleaningRule] = RULES) -> CleaningRule:
    if not record_type:
        return DEFAULT_RULE
    return rules.get(record_type.lower(), DEFAULT_RULE)


def clean_record(
    record: dict[str, Any],
    record_type: Optional[str] = None,
    rules: Mapping[str, CleaningRule] = RULES,
) -> dict[str, Any]:
    """
    Return a copy of record without its volatile fields.

    Args:
        record: Raw record from the source API
        record_type: Type discriminator; defaults to record["type"]
        rules: Rule table (default: RULES)

    Returns:
        Cleaned copy, or the original record if cleaning failed
    """
    try:
        discriminator = record_type or record.get("type")
        return rule_for(discriminator, rules).apply(record)
    except Exception as e:
        logger.warning(
            "Record cleaning failed, sending record unmodified",
            extra={
                "resource_type": record_type,
                "error_type": type(e).__name__,
                "error_message": str(e)[:200],
            },
        )
        return record


__all__ = ["CleaningRule", "DEFAULT_RULE", "RULES", "rule_for", "clean_record"]
