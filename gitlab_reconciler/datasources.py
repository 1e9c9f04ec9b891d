"""Read-only data sources that drain paginated GitLab listings."""

import zlib
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import structlog

from gitlab_reconciler.bag import AttributeBag
from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.converters import (
    ACCESS_LEVELS,
    DateConverter,
    EnumConverter,
    NestedListConverter,
    TimestampConverter,
)
from gitlab_reconciler.exceptions import ValidationError
from gitlab_reconciler.pagination import Page, PageRequest, collect_all
from gitlab_reconciler.resources.base import path_param
from gitlab_reconciler.schema import Attribute, AttrType, ResourceSchema

logger = structlog.get_logger(__name__)

TIMESTAMP = TimestampConverter()
DATE = DateConverter()

USER_ORDER_BY = EnumConverter(
    {name: name for name in ("id", "name", "username", "created_at", "updated_at")}
)
SORT_ORDERS = EnumConverter({"asc": "asc", "desc": "desc"})

USER_FIELDS = NestedListConverter(
    {
        name: name
        for name in (
            "id",
            "username",
            "email",
            "name",
            "is_admin",
            "can_create_group",
            "can_create_project",
            "projects_limit",
            "created_at",
            "state",
            "external",
            "extern_uid",
            "provider",
            "organization",
            "two_factor_enabled",
            "avatar_url",
            "bio",
            "location",
            "skype",
            "linkedin",
            "twitter",
            "website_url",
            "theme_id",
            "color_scheme_id",
            "last_sign_in_at",
            "current_sign_in_at",
        )
    },
    converters={
        "created_at": TIMESTAMP,
        "last_sign_in_at": TIMESTAMP,
        "current_sign_in_at": TIMESTAMP,
    },
)

MEMBER_FIELDS = NestedListConverter(
    {
        name: name
        for name in (
            "id",
            "username",
            "name",
            "state",
            "avatar_url",
            "web_url",
            "access_level",
            "expires_at",
        )
    },
    converters={"access_level": ACCESS_LEVELS, "expires_at": DATE},
)


def query_id(*parts: Any) -> str:
    """Stable identity for a data source query."""
    text = ",".join("" if part is None else str(part) for part in parts)
    return str(zlib.crc32(text.encode("utf-8")))


class DataSource(ABC):
    """Base class for read-only lookups.

    A data source reads its query from the bag, fetches every matching
    entity, and writes the flattened results and a stable identity back.
    """

    schema: ClassVar[ResourceSchema]

    def __init__(self, client: GitLabClient) -> None:
        self.client = client
        self._logger = logger.bind(data_source=self.schema.resource_type)

    def new_bag(self, config: dict[str, Any] | None = None) -> AttributeBag:
        return AttributeBag(self.schema, config=config)

    @abstractmethod
    async def read(self, bag: AttributeBag) -> None:
        """Populate the bag's computed attributes."""
        pass

    async def _drain(
        self, path: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        async def fetch(page_request: PageRequest) -> Page[dict[str, Any]]:
            return await self.client.get_page(path, page_request, params=params)

        return await collect_all(fetch, page_size=self.client.page_size)


class UsersDataSource(DataSource):
    """Users matching a set of filters.

    Some filters need administrator privileges on the instance.
    """

    schema = ResourceSchema(
        "gitlab_users",
        [
            Attribute("order_by", optional=True, default="id", converter=USER_ORDER_BY),
            Attribute("sort", optional=True, default="desc", converter=SORT_ORDERS),
            Attribute("search", optional=True),
            Attribute("active", AttrType.BOOL, optional=True),
            Attribute("blocked", AttrType.BOOL, optional=True),
            Attribute("extern_uid", optional=True),
            Attribute("extern_provider", optional=True, remote_name="provider"),
            Attribute("created_before", optional=True, converter=DATE),
            Attribute("created_after", optional=True, converter=DATE),
            Attribute("users", AttrType.LIST, computed=True, converter=USER_FIELDS),
        ],
    )

    async def read(self, bag: AttributeBag) -> None:
        params = {}
        parts = []
        for attribute in self.schema:
            if not attribute.sendable:
                continue
            value = bag.get(attribute.name)
            parts.append(value)
            # Filters left unset, or set to false, are not sent
            if not value:
                continue
            if attribute.converter is not None:
                value = attribute.converter.to_remote_value(value, attribute.name)
            params[attribute.remote_name] = value

        self._logger.debug("Listing users", filters=sorted(params))
        users = await self._drain("/users", params)

        bag.set("users", USER_FIELDS.to_bag(users, "users"))
        bag.identity = query_id(*parts)
        self._logger.info("Listed users", count=len(users), identity=bag.identity)


class GroupMembershipDataSource(DataSource):
    """Members of a group, optionally filtered by access level."""

    schema = ResourceSchema(
        "gitlab_group_membership",
        [
            Attribute("group_id", AttrType.INT, optional=True, computed=True),
            Attribute("full_path", optional=True, computed=True),
            Attribute("access_level", optional=True, converter=ACCESS_LEVELS),
            Attribute("members", AttrType.LIST, computed=True, converter=MEMBER_FIELDS),
        ],
    )

    def new_bag(self, config: dict[str, Any] | None = None) -> AttributeBag:
        config = config or {}
        if config.get("group_id") is not None and config.get("full_path") is not None:
            raise ValidationError(
                "group_id conflicts with full_path; set only one of them",
                attribute="full_path",
            )
        return super().new_bag(config)

    async def read(self, bag: AttributeBag) -> None:
        # After a read both are known; the numeric ID wins
        group_id = bag.get_int("group_id")
        full_path = bag.get_str("full_path")
        if group_id:
            reference: Any = group_id
        elif full_path:
            reference = full_path
        else:
            raise ValidationError(
                "One of group_id or full_path must be set",
                attribute="group_id",
            )

        access_level = bag.get_str("access_level")
        level = ACCESS_LEVELS.to_remote_value(access_level, "access_level")

        group = await self.client.get_json(f"/groups/{path_param(reference)}")
        members = await self._drain(f"/groups/{group['id']}/members")
        if level is not None:
            members = [m for m in members if m.get("access_level") == level]

        bag.set_many(
            {
                "group_id": group["id"],
                "full_path": group.get("full_path"),
                "members": MEMBER_FIELDS.to_bag(members, "members"),
            }
        )
        bag.identity = query_id(group["id"], access_level)
        self._logger.info(
            "Listed group members",
            group_id=group["id"],
            count=len(members),
            identity=bag.identity,
        )
