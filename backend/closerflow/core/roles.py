"""
Roles and the capability checks derived from them.

The same functions gate route dependencies and are reported to clients in
``GET /auth/me`` so the UI hides what the server would refuse anyway.
"""
from enum import Enum
from typing import List, Union


class Role(str, Enum):
    funcionaria = "funcionaria"
    gerente = "gerente"
    administrador = "administrador"
    super_admin = "super_admin"


ROLE_RANK = {
    Role.funcionaria: 0,
    Role.gerente: 1,
    Role.administrador: 2,
    Role.super_admin: 3,
}

ADMIN_ROLES = {Role.administrador, Role.super_admin}
MANAGER_ROLES = {Role.gerente, Role.administrador, Role.super_admin}


def _as_role(role: Union[Role, str, None]) -> Union[Role, None]:
    if role is None:
        return None
    try:
        return Role(role)
    except ValueError:
        return None


def role_rank(role: Union[Role, str, None]) -> int:
    """Rank of a role; unknown or missing roles rank below funcionaria."""
    parsed = _as_role(role)
    if parsed is None:
        return -1
    return ROLE_RANK[parsed]


def can_edit(role: Union[Role, str, None], target_role: Union[Role, str, None]) -> bool:
    """
    Whether a user with ``role`` may edit a user holding (or being given) ``target_role``.

    Managers edit funcionárias and other managers, administrators everything
    up to administrador, super admins everything.
    """
    if role_rank(role) < ROLE_RANK[Role.gerente]:
        return False
    if _as_role(target_role) is None:
        return False
    return role_rank(target_role) <= role_rank(role)


def can_delete(role: Union[Role, str, None]) -> bool:
    return _as_role(role) in ADMIN_ROLES


def can_approve(role: Union[Role, str, None]) -> bool:
    return _as_role(role) in MANAGER_ROLES


def can_manage_stock(role: Union[Role, str, None]) -> bool:
    return _as_role(role) in ADMIN_ROLES


def can_manage_organizations(role: Union[Role, str, None]) -> bool:
    return _as_role(role) == Role.super_admin


def assignable_roles(role: Union[Role, str, None]) -> List[Role]:
    return [candidate for candidate in Role if can_edit(role, candidate)]


def capabilities(role: Union[Role, str, None]) -> dict:
    return {
        "approve_closings": can_approve(role),
        "delete": can_delete(role),
        "manage_stock": can_manage_stock(role),
        "manage_organizations": can_manage_organizations(role),
        "assignable_roles": [r.value for r in assignable_roles(role)],
    }
