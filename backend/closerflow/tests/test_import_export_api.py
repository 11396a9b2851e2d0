from decimal import Decimal

from closerflow.models.store import Store
from closerflow.services.csv_service import BOM

HEADER = "Data;Código Loja;Valor Esperado;Valor Contado;Observações\n"


def upload(client, path, content, headers, filename="fechamentos.csv", **data):
    files = {"file": (filename, content.encode("utf-8"), "text/csv")}
    return client.post(path, files=files, data=data, headers=headers)


def test_import_closings(client, stores, employee_headers):
    content = (
        HEADER
        + '"29/12/2024";"JC001";"5000,00";"4980,50";"Exemplo"\n'
        + "30/12/2024;JN002;100,00;150,00;\n"
        + "30/12/2024;XX999;100,00;100,00;\n"
    )
    r = upload(client, "/import/closings", content, employee_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["imported"] == 2
    assert body["total_rows"] == 3
    assert body["errors"] == ['Linha 4: Código de loja "XX999" não encontrado']

    closings = client.get("/closings/", headers=employee_headers).json()
    by_code = {c["store_code"]: c for c in closings}
    assert Decimal(by_code["JC001"]["difference"]) == Decimal("-19.50")
    assert by_code["JC001"]["status"] == "atencao"
    assert by_code["JC001"]["date"] == "2024-12-29"
    assert by_code["JN002"]["status"] == "atencao"


def test_dry_run_writes_nothing(client, stores, employee_headers):
    content = HEADER + "29/12/2024;JC001;5000,00;4995,00;\n"
    r = upload(client, "/import/closings", content, employee_headers, dry_run="true")
    assert r.status_code == 200
    body = r.json()
    assert body["imported"] == 0
    assert body["rows"][0]["status"] == "ok"
    assert body["rows"][0]["difference"] == "-5.00"
    assert client.get("/closings/", headers=employee_headers).json() == []


def test_foreign_store_codes_are_not_importable(client, stores, foreign_store, employee_headers):
    r = upload(client, "/import/closings", HEADER + "29/12/2024;OR001;10,00;10,00;\n", employee_headers)
    assert r.json()["imported"] == 0
    assert "OR001" in r.json()["errors"][0]


def test_rejects_non_csv(client, stores, employee_headers):
    r = upload(client, "/import/closings", HEADER, employee_headers, filename="dados.xlsx")
    assert r.status_code == 400


def test_export_round_trip(client, stores, employee_headers):
    upload(client, "/import/closings", HEADER + "29/12/2024;JC001;8950,00;8920,00;\n", employee_headers)
    r = client.get("/import/closings/export", headers=employee_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    text = r.content.decode("utf-8")
    assert text.startswith(BOM)
    assert '"2024-12-29";"JC001";"Loja Centro";"8950,00";"8920,00";"-30,00";"atencao";""' in text

    dry = upload(client, "/import/closings", text, employee_headers, dry_run="true").json()
    assert dry["errors"] == []
    assert [(row["difference"], row["status"]) for row in dry["rows"]] == [("-30.00", "atencao")]


def test_export_empty_is_404(client, stores, employee_headers):
    assert client.get("/import/closings/export", headers=employee_headers).status_code == 404


def test_xlsx_export(client, stores, employee_headers):
    upload(client, "/import/closings", HEADER + "29/12/2024;JC001;10,00;10,00;\n", employee_headers)
    r = client.get("/import/closings/export.xlsx", headers=employee_headers)
    assert r.status_code == 200
    assert r.content[:2] == b"PK"


def test_templates(client):
    r = client.get("/import/closings/template")
    assert r.status_code == 200
    assert "JC001" in r.content.decode("utf-8")
    assert "Valor Unitário" in client.get("/import/products/template").content.decode("utf-8")


def test_import_products_requires_admin(client, stores, manager_headers, admin_headers):
    content = "Nome;Tipo;Loja (Código);Quantidade;Valor Unitário\nAnel;Joia;JC001;3;99,90\nPulseira;Joia;JX;1;5\n"
    r = upload(client, "/import/products", content, manager_headers, filename="estoque.csv")
    assert r.status_code == 403

    r = upload(client, "/import/products", content, admin_headers, filename="estoque.csv")
    assert r.status_code == 200, r.text
    assert r.json()["imported"] == 1
    assert len(r.json()["errors"]) == 1

    exported = client.get("/import/products/export", headers=admin_headers)
    assert exported.status_code == 200
    assert '"Anel";"Joia";"Loja Centro";"3";"99,90";"299,70"' in exported.content.decode("utf-8")


def test_import_products_without_valid_rows(client, stores, admin_headers):
    content = "Nome;Tipo;Loja (Código);Quantidade;Valor Unitário\nAnel;Joia;NADA;3;99,90\n"
    r = upload(client, "/import/products", content, admin_headers, filename="estoque.csv")
    assert r.status_code == 400


def test_code_shared_across_organizations_is_not_guessed(client, db_session, stores, other_organization, super_headers):
    db_session.add(Store(name="AAA Outra", code="JC001", organization_id=other_organization.id))
    db_session.commit()

    content = HEADER + "29/12/2024;JC001;5000,00;4980,50;x\n29/12/2024;JN002;100,00;100,00;\n"
    body = upload(client, "/import/closings", content, super_headers).json()
    assert body["imported"] == 1
    assert body["errors"] == ['Linha 2: Código de loja "JC001" ambíguo']

    closings = client.get("/closings/", headers=super_headers).json()
    assert [(c["store_id"], c["organization_id"]) for c in closings] == [(stores[1].id, stores[1].organization_id)]
