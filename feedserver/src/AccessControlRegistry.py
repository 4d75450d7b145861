"""AccessControlRegistry: Hierarchical roles shared by the feed server contracts.

Each manager address has a root role. Roles below it are derived from their
admin role and a human-readable description, so the same description under
two managers yields two unrelated roles:

    rootRole = keccak256(abi.encodePacked(manager))
    role     = keccak256(abi.encodePacked(adminRole, keccak256(abi.encodePacked(description))))

Contracts are "adminned" by a manager: their admin role is derived from the
manager's root role and an admin role description, and each of their
functional roles (dAPI name setter, auctioneer, withdrawer) is derived from
that admin role. The manager itself passes every role check.

.. code-block:: python

    >>> registry = AccessControlRegistry(ledger)
    >>> registry.initialize_manager(manager, sender=manager)
    >>> admin_role = registry.initialize_role_and_grant_to_sender(
    ...     derive_root_role(manager), "Api3ServerV1 admin", sender=manager
    ... )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from web3 import Web3

from .errors import AccessDeniedError, InvalidArgumentError
from .Ledger import ZERO_ADDRESS, Ledger, LedgerAccount, external

logger = logging.getLogger(__name__)

DAPI_NAME_SETTER_ROLE_DESCRIPTION = "dAPI name setter"
AUCTIONEER_ROLE_DESCRIPTION = "Auctioneer"
WITHDRAWER_ROLE_DESCRIPTION = "Withdrawer"


def derive_root_role(manager: str) -> bytes:
    """Derive the root role of a manager.

    :param manager: Manager address.
    :returns: 32-byte root role.
    """
    return bytes(Web3.solidity_keccak(["address"], [Web3.to_checksum_address(manager)]))


def derive_role(admin_role: bytes, description: str) -> bytes:
    """Derive a role from its admin role and description.

    :param admin_role: 32-byte admin role.
    :param description: Human-readable role description.
    :returns: 32-byte role.
    """
    description_hash = bytes(Web3.solidity_keccak(["string"], [description]))
    return bytes(Web3.solidity_keccak(["bytes32", "bytes32"], [admin_role, description_hash]))


@dataclass
class AccessControlStorage:
    members: dict[bytes, set[str]] = field(default_factory=dict)
    admins: dict[bytes, bytes] = field(default_factory=dict)


class AccessControlRegistry(LedgerAccount):
    """Registry of role memberships and role admins."""

    def __init__(self, ledger: Ledger) -> None:
        super().__init__(ledger, AccessControlStorage())

    def has_role(self, role: bytes, account: str) -> bool:
        """Check if an account holds a role."""
        return Web3.to_checksum_address(account) in self.storage.members.get(role, set())

    def get_role_admin(self, role: bytes) -> bytes | None:
        """Get the admin role of a role, None for unknown and root roles."""
        return self.storage.admins.get(role)

    @external
    def initialize_manager(self, manager: str, *, sender: str) -> None:
        """Grant a manager its root role. Anyone may call this.

        :param manager: Manager address.
        :raises InvalidArgumentError: If the manager address is zero.
        """
        if manager == ZERO_ADDRESS:
            raise InvalidArgumentError("Manager address zero")
        manager = Web3.to_checksum_address(manager)
        root_role = derive_root_role(manager)
        if not self.has_role(root_role, manager):
            self._grant(root_role, manager)
            logger.info(f"Initialized manager {manager}")

    @external
    def initialize_role_and_grant_to_sender(
        self, admin_role: bytes, description: str, *, sender: str
    ) -> bytes:
        """Create a role under an admin role the sender holds, and grant it to the sender.

        :param admin_role: Admin role of the new role.
        :param description: Description of the new role.
        :returns: The derived role.
        :raises InvalidArgumentError: If the description is empty.
        :raises AccessDeniedError: If the sender does not hold the admin role.
        """
        if not description:
            raise InvalidArgumentError("Role description empty")
        if not self.has_role(admin_role, sender):
            raise AccessDeniedError("Sender is not admin")
        role = derive_role(admin_role, description)
        self.storage.admins.setdefault(role, admin_role)
        self._grant(role, sender)
        logger.info(f"Initialized role '{description}' 0x{role.hex()} for {sender}")
        return role

    @external
    def grant_role(self, role: bytes, account: str, *, sender: str) -> None:
        """Grant a role. The sender must hold the role's admin role.

        :raises AccessDeniedError: If the sender does not hold the admin role.
        """
        self._require_admin(role, sender)
        self._grant(role, Web3.to_checksum_address(account))

    @external
    def revoke_role(self, role: bytes, account: str, *, sender: str) -> None:
        """Revoke a role. The sender must hold the role's admin role.

        :raises AccessDeniedError: If the sender does not hold the admin role.
        """
        self._require_admin(role, sender)
        self.storage.members.get(role, set()).discard(Web3.to_checksum_address(account))
        logger.info(f"Revoked role 0x{role.hex()} from {account}")

    def _require_admin(self, role: bytes, sender: str) -> None:
        admin_role = self.storage.admins.get(role)
        if admin_role is None or not self.has_role(admin_role, sender):
            raise AccessDeniedError("Sender is not admin")

    def _grant(self, role: bytes, account: str) -> None:
        self.storage.members.setdefault(role, set()).add(account)
        logger.debug(f"Granted role 0x{role.hex()} to {account}")


class RegistryAdminnedWithManager:
    """Mixin for contracts whose roles hang off a manager's root role.

    :ivar access_control_registry: Registry queried for role membership.
    :ivar manager: Manager address, passes every role check.
    :ivar admin_role_description: Description of the contract's admin role.
    :ivar admin_role: Role under which the contract's functional roles live.
    """

    def _init_roles(
        self,
        access_control_registry: AccessControlRegistry,
        admin_role_description: str,
        manager: str,
    ) -> None:
        if not admin_role_description:
            raise InvalidArgumentError("Admin role description empty")
        if manager == ZERO_ADDRESS:
            raise InvalidArgumentError("Manager address zero")
        self.access_control_registry = access_control_registry
        self.admin_role_description = admin_role_description
        self.manager = Web3.to_checksum_address(manager)
        self.admin_role = derive_role(derive_root_role(self.manager), admin_role_description)

    def _derive_role(self, description: str) -> bytes:
        return derive_role(self.admin_role, description)

    def _has_role_or_is_manager(self, role: bytes, account: str) -> bool:
        return Web3.to_checksum_address(
            account
        ) == self.manager or self.access_control_registry.has_role(role, account)
