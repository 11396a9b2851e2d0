from closerflow.core.roles import Role, assignable_roles, can_approve, can_delete, can_edit, capabilities


def test_employee_edits_nobody():
    assert not can_edit(Role.funcionaria, Role.funcionaria)


def test_manager_edits_up_to_own_rank():
    assert can_edit("gerente", "funcionaria")
    assert can_edit("gerente", "gerente")
    assert not can_edit("gerente", "administrador")


def test_admin_cannot_touch_super_admin():
    assert can_edit(Role.administrador, Role.administrador)
    assert not can_edit(Role.administrador, Role.super_admin)
    assert can_edit(Role.super_admin, Role.super_admin)


def test_unknown_roles_are_denied():
    assert not can_edit("dono", "funcionaria")
    assert not can_edit("super_admin", "dono")
    assert not can_delete(None)


def test_delete_and_approve():
    assert [r.value for r in Role if can_delete(r)] == ["administrador", "super_admin"]
    assert [r.value for r in Role if can_approve(r)] == ["gerente", "administrador", "super_admin"]


def test_assignable_roles_and_capabilities():
    assert assignable_roles("gerente") == [Role.funcionaria, Role.gerente]
    caps = capabilities("administrador")
    assert caps["delete"] and caps["manage_stock"] and caps["approve_closings"]
    assert not caps["manage_organizations"]
    assert caps["assignable_roles"] == ["funcionaria", "gerente", "administrador"]
