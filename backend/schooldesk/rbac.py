from __future__ import annotations

from typing import Iterable
from uuid import UUID

from . import models
from .auth import Identity
from .errors import Forbidden

# purpose: single home for role and location scoped access decisions
# status: active

Role = models.Role

MANAGER_ROLES: frozenset[Role] = frozenset({Role.DEVELOPER, Role.LEAD})

# every role must appear here; a missing entry fails at import time
_ROLE_LEVELS: dict[Role, int] = {
    Role.TEACHER: 10,
    Role.OFFICE: 20,
    Role.LEAD: 50,
    Role.DEVELOPER: 100,
}
if set(_ROLE_LEVELS) != set(Role):
    raise RuntimeError("role level table is missing a role")


def role_level(role: Role) -> int:
    return _ROLE_LEVELS[role]


def has_location_access(identity: Identity, location_id: UUID) -> bool:
    """Developers reach every location, everyone else only their memberships."""

    return identity.is_developer or location_id in identity.location_ids


def ensure_location_access(identity: Identity, location_id: UUID) -> None:
    if not has_location_access(identity, location_id):
        raise Forbidden()


def require_role(identity: Identity, roles: Iterable[Role]) -> None:
    if identity.role not in set(roles):
        raise Forbidden()


def require_manager(identity: Identity) -> None:
    require_role(identity, MANAGER_ROLES)


def require_developer(identity: Identity) -> None:
    require_role(identity, (Role.DEVELOPER,))


def ensure_manager_at(identity: Identity, location_id: UUID) -> None:
    """Manager role and access to the location, checked together."""

    require_manager(identity)
    ensure_location_access(identity, location_id)


def ensure_can_view_location_accounts(identity: Identity, location_id: UUID) -> None:
    ensure_manager_at(identity, location_id)


def ensure_can_create_account(identity: Identity, role: Role, location_ids: Iterable[UUID]) -> None:
    """Leads may create non-developer accounts inside their own locations."""

    require_manager(identity)
    if role_level(role) > role_level(identity.role):
        raise Forbidden()
    for location_id in location_ids:
        ensure_location_access(identity, location_id)


def ensure_can_change_activation(
    identity: Identity,
    target: models.User,
    target_location_ids: Iterable[UUID],
) -> None:
    """Decide whether the caller may deactivate or reactivate ``target``.

    Nobody acts on themselves, only developers act on developers, and a lead
    must share at least one location with the target.
    """

    require_manager(identity)
    if target.id == identity.user_id:
        raise Forbidden()
    if role_level(target.role) > role_level(identity.role):
        raise Forbidden()
    if target.role is Role.DEVELOPER and not identity.is_developer:
        raise Forbidden()
    if identity.is_developer:
        return
    if not any(has_location_access(identity, loc) for loc in target_location_ids):
        raise Forbidden()


def ensure_can_invite(identity: Identity, role: Role, location_id: UUID) -> None:
    """Inviting follows the account creation rules for a single location."""

    ensure_can_create_account(identity, role, (location_id,))


def ensure_can_change_membership(identity: Identity, target: models.User, location_id: UUID) -> None:
    """Switch a member's status at one location the caller manages."""

    ensure_manager_at(identity, location_id)
    if target.id == identity.user_id:
        raise Forbidden()
    if role_level(target.role) > role_level(identity.role):
        raise Forbidden()


def can_view_button(
    identity: Identity,
    button: models.CustomButton,
    permissions: Iterable[models.ButtonPermission],
) -> bool:
    """Role grant, per-account grant or ownership makes a button visible."""

    if not has_location_access(identity, button.location_id):
        return False
    if identity.is_developer or button.created_by == identity.user_id:
        return True
    for grant in permissions:
        if grant.role is not None and grant.role == identity.role:
            return True
        if grant.user_id is not None and grant.user_id == identity.user_id:
            return True
    return False


def ensure_can_manage_button(identity: Identity, button: models.CustomButton) -> None:
    ensure_manager_at(identity, button.location_id)


def ensure_can_send_template(identity: Identity, template: models.EmailTemplate) -> None:
    ensure_manager_at(identity, template.location_id)
