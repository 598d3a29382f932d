"""Directory exporters for tenant units: users, groups and group memberships."""

import logging
from typing import Any

from inventory_export.exporters.base import EntityExporter, FanOutExporter
from inventory_export.source.fetcher import PagedFetcher

logger = logging.getLogger(__name__)

USER_FIELDS = (
    "id",
    "displayName",
    "userPrincipalName",
    "mail",
    "accountEnabled",
    "userType",
    "createdDateTime",
    "onPremisesSyncEnabled",
    "jobTitle",
    "department",
)

GROUP_FIELDS = (
    "id",
    "displayName",
    "description",
    "mail",
    "mailEnabled",
    "securityEnabled",
    "groupTypes",
    "createdDateTime",
    "membershipRule",
    "isAssignableToRole",
)

MEMBER_FIELDS = ("id", "displayName", "userPrincipalName", "appId")

GROUP_IDS_KEY = "group_ids"


class DirectoryExporter(EntityExporter):
    """Flat Graph collection export (one paged GET per tenant)."""

    path = ""
    select: tuple[str, ...] = ()
    record_type = ""

    @property
    def fetcher(self) -> PagedFetcher:
        if self.ctx.graph is None:
            raise RuntimeError(f"{self.entity_type} requires a Graph fetcher")
        return self.ctx.graph

    def params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"$top": self.ctx.config.source.page_size}
        if self.select:
            params["$select"] = ",".join(self.select)
        return params

    def url(self) -> str:
        return f"{self.ctx.config.source.graph_endpoint}{self.path}"

    def records(self):
        return self.fetcher.iter_items(self.url(), self.params())

    def export(self) -> None:
        self.emit_all(self.records(), record_type=self.record_type)


class UsersExporter(DirectoryExporter):
    entity_type = "Users"
    odata_context = "users"
    path = "/users"
    select = USER_FIELDS
    record_type = "user"


class GroupsExporter(DirectoryExporter):
    """Exports groups and collects their ids for the membership fan-out."""

    entity_type = "Groups"
    odata_context = "groups"
    path = "/groups"
    select = GROUP_FIELDS
    record_type = "group"

    def records(self):
        group_ids = self.ctx.collected.setdefault(GROUP_IDS_KEY, [])
        for record in super().records():
            if record.get("id"):
                group_ids.append(record["id"])
            yield record


class MembershipsExporter(FanOutExporter):
    """
    One members query per group collected by GroupsExporter.

    Member records keep their own id; the group id travels as parentId.
    sub_type_breakdown counts members by directory object kind.
    """

    entity_type = "Memberships"
    odata_context = "groupMembers"
    record_type = "membership"

    def parents(self) -> list[str]:
        return list(self.ctx.collected.get(GROUP_IDS_KEY, []))

    def export_parent(self, parent: str) -> int:
        if self.ctx.graph is None:
            raise RuntimeError("Memberships requires a Graph fetcher")
        url = f"{self.ctx.config.source.graph_endpoint}/groups/{parent}/members"
        params = {"$select": ",".join(MEMBER_FIELDS), "$top": self.ctx.config.source.page_size}

        count = 0
        for member in self.ctx.graph.iter_items(url, params):
            kind = str(member.get("@odata.type", "")).rsplit(".", 1)[-1] or "unknown"
            self.emit(member, record_type=self.record_type, parent_id=parent, sub_type=kind)
            count += 1
        return count


__all__ = [
    "GROUP_IDS_KEY",
    "DirectoryExporter",
    "UsersExporter",
    "GroupsExporter",
    "MembershipsExporter",
]
