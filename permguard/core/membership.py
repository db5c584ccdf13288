"""
Membership table - which roles each member holds.

Every member has a fixed array of ROLE_SLOTS role slots; BLANK_ROLE marks a
free slot. A role id that has been deprecated can never be assigned again,
but members already holding it keep it until revoked or dropped.
"""

import logging
from typing import Dict, Iterable, List, Set, Tuple

from .errors import BlankRoleId, RoleDeprecated, RoleExceeded
from .models import BLANK_ROLE, ROLE_SLOTS, RoleLike, role_hex, to_address, to_role_id

logger = logging.getLogger("permguard.membership")


class MembershipTable:
    def __init__(self, capacity: int = ROLE_SLOTS):
        self.capacity = capacity
        self._slots: Dict[str, List[bytes]] = {}
        self._deprecated: Set[bytes] = set()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def roles_of(self, member: str) -> Tuple[bytes, ...]:
        """All slots of member, in slot order, blank slots included."""
        slots = self._slots.get(to_address(member))
        if slots is None:
            return (BLANK_ROLE,) * self.capacity
        return tuple(slots)

    def assigned_roles(self, member: str) -> List[Tuple[int, bytes]]:
        """(slot index, role) for each occupied slot."""
        return [
            (index, role)
            for index, role in enumerate(self.roles_of(member))
            if role != BLANK_ROLE
        ]

    def has_role(self, member: str, role: RoleLike) -> bool:
        role_id = to_role_id(role)
        return role_id != BLANK_ROLE and role_id in self.roles_of(member)

    def is_deprecated(self, role: RoleLike) -> bool:
        return to_role_id(role) in self._deprecated

    def members(self) -> List[str]:
        return [m for m, slots in self._slots.items() if any(r != BLANK_ROLE for r in slots)]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def assign_role(self, member: str, role: RoleLike) -> bool:
        """
        Put role into the first free slot of member.

        Returns False when the member already held the role (no-op),
        True when a slot was filled.

        Raises:
            BlankRoleId, RoleDeprecated, RoleExceeded
        """
        return self.assign_roles(member, [role]) > 0

    def assign_roles(self, member: str, roles: Iterable[RoleLike]) -> int:
        """
        Assign several roles at once, all-or-nothing.

        The whole batch is validated against a copy of the member's slots
        before anything is written. Returns the number of newly filled slots.
        """
        member = to_address(member)
        role_ids = [to_role_id(r) for r in roles]

        for role_id in role_ids:
            if role_id == BLANK_ROLE:
                raise BlankRoleId()
            if role_id in self._deprecated:
                raise RoleDeprecated(role_hex(role_id))

        slots = list(self._slots.get(member, [BLANK_ROLE] * self.capacity))
        added = 0
        for role_id in role_ids:
            if role_id in slots:
                continue
            try:
                free = slots.index(BLANK_ROLE)
            except ValueError:
                raise RoleExceeded(member, self.capacity) from None
            slots[free] = role_id
            added += 1

        self._slots[member] = slots
        if added:
            logger.info(f"Assigned {added} role(s) to {member}")
        return added

    def revoke_role(self, member: str, role: RoleLike) -> bool:
        """Clear the slot holding role. Returns False if member did not hold it."""
        member = to_address(member)
        role_id = to_role_id(role)
        slots = self._slots.get(member)
        if role_id == BLANK_ROLE or slots is None or role_id not in slots:
            return False

        updated = list(slots)
        updated[updated.index(role_id)] = BLANK_ROLE
        self._slots[member] = updated
        logger.info(f"Revoked role {role_hex(role_id)} from {member}")
        return True

    def drop_member(self, member: str) -> None:
        member = to_address(member)
        self._slots.pop(member, None)
        logger.info(f"Dropped all roles of {member}")

    def deprecate_role(self, role: RoleLike) -> None:
        role_id = to_role_id(role)
        if role_id == BLANK_ROLE:
            raise BlankRoleId()
        if role_id in self._deprecated:
            raise RoleDeprecated(role_hex(role_id))
        self._deprecated.add(role_id)
        logger.info(f"Deprecated role {role_hex(role_id)}")

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def export_state(self) -> Dict:
        return {
            "members": {
                member: [role_hex(r) for r in slots]
                for member, slots in self._slots.items()
            },
            "deprecated": sorted(role_hex(r) for r in self._deprecated),
        }

    def import_state(self, state: Dict) -> None:
        slots_by_member = {}
        for member, slots in state.get("members", {}).items():
            role_ids = [to_role_id(r) for r in slots]
            role_ids += [BLANK_ROLE] * (self.capacity - len(role_ids))
            slots_by_member[to_address(member)] = role_ids[: self.capacity]
        deprecated = {to_role_id(r) for r in state.get("deprecated", [])}

        self._slots = slots_by_member
        self._deprecated = deprecated
