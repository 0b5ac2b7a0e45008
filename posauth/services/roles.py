"""
Role configuration provider.

Role metadata lives in the store as data; the built-in table below is the
fallback used until roles are provisioned, and the seed source for them.
"""
import logging
from typing import Optional

from posauth.core.exceptions import NotFoundError
from posauth.db.store import CredentialStore, RecordKind
from posauth.models import AppView, Role, RoleConfig
from posauth.schemas.role import RoleConfigSchema

logger = logging.getLogger(__name__)

_ALL = ["*"]

# Total over Role: every built-in role has exactly one entry.
DEFAULT_ROLE_CONFIGS: dict[Role, RoleConfigSchema] = {
    Role.STAFF: RoleConfigSchema(
        role=Role.STAFF.value,
        label="Staff",
        description="Basic POS operations and customer service",
        access_level=1,
        permitted_views=[
            AppView.POS.value,
            AppView.INVENTORY.value,
            AppView.CUSTOMERS.value,
            AppView.TIME_TRACKING.value,
        ],
        permissions={
            "pos": ["view", "process_sale", "void_item"],
            "customers": ["view", "create", "edit"],
            "inventory": ["view"],
            "reports": ["view_basic"],
        },
    ),
    Role.MANAGER: RoleConfigSchema(
        role=Role.MANAGER.value,
        label="Manager",
        description="Store management and advanced operations",
        access_level=2,
        permitted_views=[
            AppView.POS.value,
            AppView.INVENTORY.value,
            AppView.SALES.value,
            AppView.CUSTOMERS.value,
            AppView.PAYROLL.value,
            AppView.EMPLOYEES.value,
            AppView.TIME_TRACKING.value,
        ],
        permissions={
            "pos": ["view", "process_sale", "void_item", "refund", "discount"],
            "customers": ["view", "create", "edit", "delete"],
            "inventory": ["view", "edit", "adjust_stock"],
            "reports": ["view_basic", "view_detailed", "export"],
            "staff": ["view", "manage_shifts"],
            "users": ["read", "update"],
        },
    ),
    Role.OWNER: RoleConfigSchema(
        role=Role.OWNER.value,
        label="Business Owner",
        description="Full business control and analytics",
        access_level=3,
        permitted_views=[
            AppView.POS.value,
            AppView.INVENTORY.value,
            AppView.SALES.value,
            AppView.CUSTOMERS.value,
            AppView.SETTINGS.value,
            AppView.PAYROLL.value,
            AppView.EMPLOYEES.value,
            AppView.TIME_TRACKING.value,
        ],
        permissions={
            module: _ALL
            for module in (
                "pos", "customers", "inventory", "reports",
                "staff", "settings", "business", "users",
            )
        },
    ),
    Role.DEVELOPER: RoleConfigSchema(
        role=Role.DEVELOPER.value,
        label="Developer",
        description="System development and debugging",
        access_level=4,
        permitted_views=[
            AppView.POS.value,
            AppView.INVENTORY.value,
            AppView.SALES.value,
            AppView.CUSTOMERS.value,
            AppView.SETTINGS.value,
            AppView.DEBUG.value,
        ],
        permissions={
            module: _ALL
            for module in (
                "pos", "customers", "inventory", "reports", "staff",
                "settings", "business", "users", "system", "debug",
                "maintenance",
            )
        },
    ),
    Role.SUPPORT: RoleConfigSchema(
        role=Role.SUPPORT.value,
        label="Technical Support",
        description="Remote support and troubleshooting",
        access_level=5,
        permitted_views=[
            AppView.INVENTORY.value,
            AppView.SALES.value,
            AppView.SUPPORT.value,
        ],
        permissions={
            "pos": ["view"],
            "customers": ["view"],
            "inventory": ["view"],
            "reports": ["view_basic", "view_detailed"],
            "system": _ALL,
            "debug": _ALL,
            "maintenance": _ALL,
            "support": _ALL,
        },
    ),
}


def _ordered(configs: list[RoleConfigSchema]) -> dict[str, RoleConfigSchema]:
    """Stable order for rendering: ascending access level, then role id."""
    return {
        config.role: config
        for config in sorted(configs, key=lambda c: (c.access_level, c.role))
    }


def default_role_records() -> list[RoleConfig]:
    """ORM records for the built-in roles (used by seeding)."""
    return [
        RoleConfig(**config.model_dump())
        for config in DEFAULT_ROLE_CONFIGS.values()
    ]


class RoleConfigProvider:
    """Reads role configs from the store, falling back to the built-in table."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    async def get_role_configs(self) -> dict[str, RoleConfigSchema]:
        """Mapping of role id to config, ordered by ascending access level."""
        records = await self._store.all(RecordKind.ROLE_CONFIG)
        if not records:
            logger.debug("No role configs provisioned; using built-in table")
            return _ordered(list(DEFAULT_ROLE_CONFIGS.values()))
        return _ordered([RoleConfigSchema.model_validate(r) for r in records])

    async def get_role_config(self, role: str) -> RoleConfigSchema:
        """Config for one role; raises NotFoundError for unknown roles."""
        configs = await self.get_role_configs()
        try:
            return configs[role]
        except KeyError:
            raise NotFoundError(f"Role '{role}' is not configured") from None

    async def find_role_config(self, role: str) -> Optional[RoleConfigSchema]:
        configs = await self.get_role_configs()
        return configs.get(role)

    async def access_level_for(self, role: str) -> int:
        return (await self.get_role_config(role)).access_level

    async def accessible_views(self, role: str) -> list[str]:
        return list((await self.get_role_config(role)).permitted_views)

    async def can_access_view(self, role: str, view: str) -> bool:
        """Navigation gate; unknown roles reach nothing."""
        config = await self.find_role_config(role)
        return config is not None and config.allows_view(view)

    async def has_permission(self, role: str, module: str, action: str) -> bool:
        """Action gate within a module; ``*`` grants every action."""
        config = await self.find_role_config(role)
        return config is not None and config.allows(module, action)

    async def can_access_module(self, role: str, module: str) -> bool:
        """True when the role holds any action in ``module``."""
        config = await self.find_role_config(role)
        return config is not None and bool(config.permissions.get(module))

    async def accessible_modules(self, role: str) -> list[str]:
        """Modules with at least one granted action; empty for unknown roles."""
        config = await self.find_role_config(role)
        if config is None:
            return []
        return [module for module, actions in config.permissions.items() if actions]
