from decimal import Decimal

from closerflow.models.user import User


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_login_and_me(client, manager, login):
    r = client.post("/auth/login", json={"email": "GERENTE@test.com", "password": "secret123"})
    assert r.status_code == 200
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
    me = client.get("/auth/me", headers=headers).json()
    assert me["role"] == "gerente"
    assert me["capabilities"]["approve_closings"] is True
    assert me["capabilities"]["delete"] is False
    assert me["capabilities"]["assignable_roles"] == ["funcionaria", "gerente"]

    refreshed = client.post("/auth/refresh", json={"refresh_token": r.json()["refresh_token"]})
    assert refreshed.status_code == 200
    wrong_kind = client.post("/auth/refresh", json={"refresh_token": r.json()["access_token"]})
    assert wrong_kind.status_code == 401


def test_bad_credentials(client, manager):
    r = client.post("/auth/login", json={"email": manager.email, "password": "errada"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Email ou senha inválidos"


def test_store_crud(client, stores, employee_headers, admin_headers):
    assert len(client.get("/stores/", headers=employee_headers).json()) == 2
    assert client.post("/stores/", json={"name": "X", "code": "X1"}, headers=employee_headers).status_code == 403

    r = client.post("/stores/", json={"name": "Loja Sul", "code": "js003", "unit": "Galeria"}, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["code"] == "JS003"
    duplicate = client.post("/stores/", json={"name": "Outra", "code": "JS003"}, headers=admin_headers)
    assert duplicate.status_code == 400

    store_id = r.json()["id"]
    updated = client.put(f"/stores/{store_id}", json={"name": "Loja Sul 2", "code": "JS003"}, headers=admin_headers)
    assert updated.json()["name"] == "Loja Sul 2"
    assert client.delete(f"/stores/{store_id}", headers=admin_headers).status_code == 200
    assert client.put(f"/stores/{store_id}", json={"name": "a", "code": "b"}, headers=admin_headers).status_code == 404


def test_product_crud_and_summary(client, stores, manager_headers, admin_headers):
    assert client.get("/products/", headers=manager_headers).status_code == 403
    for name, qty, value in [("Anel Ouro", 2, "100.00"), ("Colar Prata", 5, "20.50")]:
        r = client.post(
            "/products/",
            json={"name": name, "type": "Joia", "store_id": stores[0].id, "quantity": qty, "unit_value": value},
            headers=admin_headers,
        )
        assert r.status_code == 201, r.text

    found = client.get("/products/", params={"q": "anel"}, headers=admin_headers).json()
    assert [p["name"] for p in found] == ["Anel Ouro"]
    assert Decimal(found[0]["total_value"]) == Decimal("200.00")

    summary = client.get("/products/summary", headers=admin_headers).json()
    assert summary["products"] == 2
    assert summary["total_quantity"] == 7
    assert Decimal(summary["total_value"]) == Decimal("302.50")

    negative = client.post(
        "/products/",
        json={"name": "X", "type": "Joia", "store_id": stores[0].id, "quantity": -1},
        headers=admin_headers,
    )
    assert negative.status_code == 400

    product_id = found[0]["id"]
    r = client.put(
        f"/products/{product_id}",
        json={"name": "Anel Ouro", "type": "Joia", "store_id": stores[1].id, "quantity": 1, "unit_value": "100"},
        headers=admin_headers,
    )
    assert r.json()["store_name"] == "Loja Norte"
    assert client.delete(f"/products/{product_id}", headers=admin_headers).status_code == 200


def test_admin_creates_user_in_own_organization(client, organization, admin_headers, login):
    r = client.post(
        "/users/",
        json={"email": "Nova@test.com", "password": "123456", "name": "Nova", "role": "gerente"},
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["organization_id"] == organization.id
    assert r.json()["email"] == "nova@test.com"
    login("nova@test.com", "123456")


def test_user_creation_validation(client, admin_headers, manager_headers):
    short = client.post(
        "/users/", json={"email": "a@test.com", "password": "123", "name": "A"}, headers=admin_headers
    )
    assert short.status_code == 400
    above = client.post(
        "/users/",
        json={"email": "b@test.com", "password": "123456", "name": "B", "role": "super_admin"},
        headers=admin_headers,
    )
    assert above.status_code == 403
    by_manager = client.post(
        "/users/", json={"email": "c@test.com", "password": "123456", "name": "C"}, headers=manager_headers
    )
    assert by_manager.status_code == 403
    taken = client.post(
        "/users/", json={"email": "administrador@test.com", "password": "123456", "name": "D"}, headers=admin_headers
    )
    assert taken.status_code == 400


def test_role_change_is_visible_immediately(client, employee, employee_headers, admin_headers):
    assert client.get("/users/", headers=employee_headers).status_code == 403
    r = client.put(f"/users/{employee.id}", json={"role": "gerente"}, headers=admin_headers)
    assert r.status_code == 200, r.text
    assert client.get("/auth/me", headers=employee_headers).json()["role"] == "gerente"
    assert client.get("/users/", headers=employee_headers).status_code == 200


def test_manager_cannot_promote_to_admin(client, employee, admin, manager_headers):
    assert client.put(f"/users/{employee.id}", json={"role": "administrador"}, headers=manager_headers).status_code == 403
    assert client.put(f"/users/{admin.id}", json={"name": "X"}, headers=manager_headers).status_code == 403
    assert client.put(f"/users/{employee.id}", json={"name": "Renomeada"}, headers=manager_headers).status_code == 200


def test_reset_password(client, employee, admin_headers, login):
    r = client.post(f"/users/{employee.id}/reset-password", json={"new_password": "novasenha"}, headers=admin_headers)
    assert r.status_code == 200
    login(employee.email, "novasenha")


def test_delete_user(client, db_session, employee, admin, admin_headers, employee_headers):
    assert client.delete(f"/users/{admin.id}", headers=admin_headers).status_code == 400
    assert client.delete(f"/users/{employee.id}", headers=admin_headers).status_code == 200
    assert db_session.query(User).filter(User.id == employee.id).first() is None
    assert client.get("/auth/me", headers=employee_headers).status_code == 401


def test_users_are_scoped(client, other_organization, make_user, admin_headers, super_headers):
    outsider = make_user("funcionaria", email="fora@test.com", organization_id=other_organization.id)
    assert client.put(f"/users/{outsider.id}", json={"name": "X"}, headers=admin_headers).status_code == 404
    emails = {u["email"] for u in client.get("/users/", headers=super_headers).json()}
    assert "fora@test.com" in emails


def test_organizations_are_super_admin_only(client, admin_headers, super_headers):
    assert client.get("/organizations/", headers=admin_headers).status_code == 403
    r = client.post("/organizations/", json={"name": "Nova Rede", "code": "nr"}, headers=super_headers)
    assert r.status_code == 201
    assert r.json()["code"] == "NR"
    assert client.post("/organizations/", json={"name": "Dup", "code": "NR"}, headers=super_headers).status_code == 400
    org_id = r.json()["id"]
    assert client.put(
        f"/organizations/{org_id}", json={"name": "Rede Nova", "code": "NR"}, headers=super_headers
    ).json()["name"] == "Rede Nova"
    assert client.delete(f"/organizations/{org_id}", headers=super_headers).status_code == 200


def test_super_admin_creates_user_for_an_organization(client, other_organization, super_headers):
    r = client.post(
        "/users/",
        json={
            "email": "dona@test.com",
            "password": "123456",
            "name": "Dona",
            "role": "administrador",
            "organization_id": other_organization.id,
        },
        headers=super_headers,
    )
    assert r.status_code == 201
    assert r.json()["organization_id"] == other_organization.id


def test_closing_issues(client, stores, employee, employee_headers, manager_headers, make_user, login):
    r = client.post(
        "/closing-issues/", json={"description": "Faltou comprovante", "store_id": stores[0].id}, headers=employee_headers
    )
    assert r.status_code == 201
    issue_id = r.json()["id"]
    assert r.json()["user_name"] == employee.name

    colleague = make_user("funcionaria", email="colega@test.com")
    assert client.get("/closing-issues/", headers=login(colleague.email)).json() == []
    assert len(client.get("/closing-issues/", headers=manager_headers).json()) == 1

    assert client.post(f"/closing-issues/{issue_id}/resolve", headers=employee_headers).status_code == 403
    resolved = client.post(f"/closing-issues/{issue_id}/resolve", headers=manager_headers)
    assert resolved.json()["status"] == "resolved"
    bad = client.put(f"/closing-issues/{issue_id}", json={"status": "whatever"}, headers=manager_headers)
    assert bad.status_code == 400
    assert client.delete(f"/closing-issues/{issue_id}", headers=manager_headers).status_code == 200


def test_account_requests(client, admin, admin_headers):
    r = client.post("/account-requests/", json={"name": "Maria", "email": "Maria@test.com"})
    assert r.status_code == 201
    duplicate = client.post("/account-requests/", json={"name": "Maria", "email": "maria@test.com"})
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Este email já possui uma solicitação pendente."

    assert client.get("/account-requests/").status_code == 401
    assert client.get("/account-requests/pending-count", headers=admin_headers).json() == {"count": 1}

    request_id = r.json()["id"]
    approved = client.post(f"/account-requests/{request_id}/approve", headers=admin_headers).json()
    assert approved["status"] == "approved"
    assert approved["reviewed_by"] == admin.id
    assert approved["reviewed_at"] is not None
    assert client.get("/account-requests/pending-count", headers=admin_headers).json() == {"count": 0}
    assert client.delete(f"/account-requests/{request_id}", headers=admin_headers).status_code == 200
