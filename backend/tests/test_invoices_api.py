from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from backoffice.models.invoice import Invoice, InvoiceItem
from backoffice.models.project import Project
from backoffice.services import invoices as invoice_service


def _year() -> int:
    return datetime.now(timezone.utc).year


def _payload(**overrides):
    data = {
        "client": "Studio Atlas",
        "clientIce": "001525896000042",
        "project": "Documentaire Atlas",
        "issueDate": "2024-03-01",
        "dueDate": "2024-04-01",
        "items": [{"description": "Tournage", "unitPrice": 1000, "quantity": 2, "total": 2000}],
        "teamMembers": ["Yasmine", "Karim"],
    }
    data.update(overrides)
    return data


def _create(http, **overrides):
    response = http.post("/api/invoices", json=_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_invoice_returns_draft_with_totals(client):
    response = client.post("/api/invoices", json=_payload(status="paid"))
    assert response.status_code == 201, response.text
    body = response.json()

    assert body["success"] is True
    assert body["message"] == "Facture créée avec succès"
    invoice = body["data"]
    assert invoice["invoiceNumber"] == f"NOM-{_year()}-001"
    assert invoice["status"] == "draft"
    assert Decimal(str(invoice["amount"])) == Decimal("2000")
    assert Decimal(str(invoice["taxAmount"])) == Decimal("400")
    assert Decimal(str(invoice["totalAmount"])) == Decimal("2400")
    assert len(invoice["items"]) == 1
    assert Decimal(str(invoice["items"][0]["total"])) == Decimal("2000")
    assert invoice["assignedEmployees"] == []
    assert invoice["teamMembers"] == ["Yasmine", "Karim"]


def test_invoice_numbers_are_sequential(client):
    first = _create(client)
    second = _create(client, client="Maison Rif")
    assert first["invoiceNumber"] == f"NOM-{_year()}-001"
    assert second["invoiceNumber"] == f"NOM-{_year()}-002"


def test_estimated_costs_follow_profit_margin(client):
    with_margin = _create(client, profitMargin=25)
    without_margin = _create(client)

    assert Decimal(str(with_margin["estimatedCosts"])) == Decimal("1500")
    assert Decimal(str(without_margin["estimatedCosts"])) == Decimal("1400")


def test_create_rejects_empty_items_without_writing(client, db):
    response = client.post("/api/invoices", json=_payload(items=[]))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Au moins une ligne de facture est requise"
    assert db.query(Invoice).count() == 0


def test_create_rejects_mismatched_line_total(client, db):
    items = [{"description": "Tournage", "unitPrice": 1000, "quantity": 2, "total": 1500}]
    response = client.post("/api/invoices", json=_payload(items=items))
    assert response.status_code == 400
    assert "ligne 1" in response.json()["message"]
    assert db.query(Invoice).count() == 0


def test_create_rejects_missing_client(client):
    payload = _payload()
    payload.pop("client")
    response = client.post("/api/invoices", json=payload)
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Données de facture invalides"
    assert "client" in body["error"]


def test_create_rejects_amounts_beyond_money_columns(client, db):
    huge_price = [{"description": "Tournage", "unitPrice": "1e30", "quantity": 1}]
    response = client.post("/api/invoices", json=_payload(items=huge_price))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Données de facture invalides"

    fractional_qty = [{"description": "Tournage", "unitPrice": 100, "quantity": "0.001"}]
    assert client.post("/api/invoices", json=_payload(items=fractional_qty)).status_code == 400

    huge_line = [{"description": "Tournage", "unitPrice": "9999999999.99", "quantity": 2}]
    response = client.post("/api/invoices", json=_payload(items=huge_line))
    assert response.status_code == 400
    assert response.json()["message"] == "Le total de la ligne 1 dépasse le montant maximal autorisé"

    huge_invoice = [{"description": "Tournage", "unitPrice": "9000000000", "quantity": 1}]
    response = client.post("/api/invoices", json=_payload(items=huge_invoice))
    assert response.status_code == 400
    assert response.json()["message"] == "Le montant total de la facture dépasse le montant maximal autorisé"
    assert db.query(Invoice).count() == 0


def test_create_links_existing_project(client, db):
    project = Project(name="Série Casablanca", client_name="Studio Atlas")
    db.add(project)
    db.commit()

    invoice = _create(client, projectId=project.id)
    assert invoice["projectId"] == project.id
    assert invoice["projectName"] == "Série Casablanca"

    response = client.post("/api/invoices", json=_payload(projectId=project.id + 100))
    assert response.status_code == 400
    assert response.json()["message"] == "Projet introuvable"


def test_failed_create_rolls_back_number_and_header(client, db, monkeypatch):
    def broken_items(*args, **kwargs):
        raise OperationalError("INSERT INTO invoice_items", {}, Exception("disk I/O error"))

    monkeypatch.setattr(invoice_service, "replace_invoice_items", broken_items)
    response = client.post("/api/invoices", json=_payload())
    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Erreur lors de la création de la facture"
    assert "disk I/O error" in body["error"]
    assert db.query(Invoice).count() == 0

    monkeypatch.undo()
    invoice = _create(client)
    assert invoice["invoiceNumber"] == f"NOM-{_year()}-001"


def test_get_invoice_and_not_found(client):
    created = _create(client)

    response = client.get(f"/api/invoices/{created['id']}")
    assert response.status_code == 200
    assert response.json()["data"] == created
    assert client.get(f"/api/invoices/{created['id']}").json() == response.json()

    missing = client.get("/api/invoices/9999")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Facture non trouvée"}


def test_list_invoices_newest_first_with_filters(client):
    first = _create(client, client="Studio Atlas")
    second = _create(client, client="Maison Rif", project="Clip Rif")
    client.put(f"/api/invoices/{second['id']}", json={"status": "pending"})

    response = client.get("/api/invoices")
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert [row["id"] for row in body["data"]] == [second["id"], first["id"]]

    searched = client.get("/api/invoices", params={"search": "rif"}).json()
    assert [row["id"] for row in searched["data"]] == [second["id"]]

    drafts = client.get("/api/invoices", params={"status": "draft"}).json()
    assert [row["id"] for row in drafts["data"]] == [first["id"]]


def test_update_replaces_items_and_recomputes_totals(client, db):
    created = _create(client)
    items = [{"description": "Tournage", "unitPrice": 1000, "quantity": 3, "total": 3000}]

    response = client.put(f"/api/invoices/{created['id']}", json={"items": items})
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["message"] == "Facture mise à jour avec succès"
    invoice = body["data"]
    assert Decimal(str(invoice["amount"])) == Decimal("3000")
    assert Decimal(str(invoice["taxAmount"])) == Decimal("600")
    assert Decimal(str(invoice["totalAmount"])) == Decimal("3600")
    assert db.query(InvoiceItem).filter(InvoiceItem.invoice_id == created["id"]).count() == 1


def test_partial_update_keeps_absent_fields(client):
    created = _create(client, notes="Acompte reçu")

    response = client.put(f"/api/invoices/{created['id']}", json={"client": "Studio Atlas SARL"})
    assert response.status_code == 200
    invoice = response.json()["data"]
    assert invoice["client"] == "Studio Atlas SARL"
    assert invoice["notes"] == "Acompte reçu"
    assert invoice["totalAmount"] == created["totalAmount"]
    assert invoice["items"] == created["items"]


def test_update_null_clears_optional_field_only(client):
    created = _create(client, notes="Acompte reçu")

    cleared = client.put(f"/api/invoices/{created['id']}", json={"notes": None})
    assert cleared.status_code == 200
    assert "notes" not in cleared.json()["data"] or cleared.json()["data"]["notes"] is None

    rejected = client.put(f"/api/invoices/{created['id']}", json={"client": None})
    assert rejected.status_code == 400
    assert rejected.json()["message"] == "Données de facture invalides"

    rejected_tax = client.put(f"/api/invoices/{created['id']}", json={"taxAmount": None})
    assert rejected_tax.status_code == 400
    assert client.get(f"/api/invoices/{created['id']}").json()["data"]["taxAmount"] == created["taxAmount"]


def test_update_rejects_empty_item_list(client):
    created = _create(client)
    response = client.put(f"/api/invoices/{created['id']}", json={"items": []})
    assert response.status_code == 400
    assert response.json()["message"] == "Au moins une ligne de facture est requise"


def test_update_tax_override_keeps_total_consistent(client):
    created = _create(client)
    response = client.put(f"/api/invoices/{created['id']}", json={"taxAmount": 0})
    assert response.status_code == 200
    invoice = response.json()["data"]
    assert Decimal(str(invoice["taxAmount"])) == Decimal("0")
    assert Decimal(str(invoice["totalAmount"])) == Decimal(str(invoice["amount"]))


def test_failed_update_rolls_back_every_change(client, monkeypatch):
    created = _create(client)

    def broken_items(*args, **kwargs):
        raise OperationalError("INSERT INTO invoice_items", {}, Exception("disk I/O error"))

    monkeypatch.setattr(invoice_service, "replace_invoice_items", broken_items)
    items = [{"description": "Montage", "unitPrice": 500, "quantity": 1}]
    response = client.put(f"/api/invoices/{created['id']}", json={"client": "Maison Rif", "items": items})
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Erreur lors de la mise à jour de la facture"

    monkeypatch.undo()
    invoice = client.get(f"/api/invoices/{created['id']}").json()["data"]
    assert invoice["client"] == "Studio Atlas"
    assert invoice["totalAmount"] == created["totalAmount"]
    assert invoice["items"] == created["items"]
    assert invoice["updatedAt"] == created["updatedAt"]


def test_update_rejects_tax_pushing_total_out_of_range(client):
    created = _create(client)
    response = client.put(f"/api/invoices/{created['id']}", json={"taxAmount": "9999999999.99"})
    assert response.status_code == 400
    assert response.json()["message"] == "Le montant total de la facture dépasse le montant maximal autorisé"
    assert client.get(f"/api/invoices/{created['id']}").json()["data"]["totalAmount"] == created["totalAmount"]


def test_update_unknown_invoice(client):
    response = client.put("/api/invoices/9999", json={"notes": "x"})
    assert response.status_code == 404
    assert response.json()["message"] == "Facture non trouvée"


def test_paid_invoice_cannot_be_deleted(client, db):
    created = _create(client)
    client.put(f"/api/invoices/{created['id']}", json={"status": "paid"})

    response = client.delete(f"/api/invoices/{created['id']}")
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "message": "Impossible de supprimer une facture déjà payée",
    }

    still_there = client.get(f"/api/invoices/{created['id']}")
    assert still_there.status_code == 200
    assert len(still_there.json()["data"]["items"]) == 1


def test_delete_removes_invoice_and_items(client, db):
    created = _create(client)

    response = client.delete(f"/api/invoices/{created['id']}")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Facture supprimée avec succès"}
    assert client.get(f"/api/invoices/{created['id']}").status_code == 404
    assert db.query(InvoiceItem).count() == 0

    assert client.delete(f"/api/invoices/{created['id']}").status_code == 404


def test_stats_aggregate_by_status(client):
    paid = _create(client, profitMargin=30)
    _create(client, profitMargin=10)
    pending = _create(client)
    client.put(f"/api/invoices/{paid['id']}", json={"status": "paid"})
    client.put(f"/api/invoices/{pending['id']}", json={"status": "overdue"})

    response = client.get("/api/invoices/stats")
    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["totalInvoices"] == 3
    assert stats["draftInvoices"] == 1
    assert stats["pendingInvoices"] == 0
    assert stats["paidInvoices"] == 1
    assert stats["overdueInvoices"] == 1
    assert Decimal(str(stats["totalRevenue"])) == Decimal("2400")
    assert Decimal(str(stats["totalPendingAmount"])) == Decimal("2400")
    assert Decimal(str(stats["averageInvoiceValue"])) == Decimal("2400")
    assert Decimal(str(stats["averageProfitMargin"])) == Decimal("20")


def test_stats_on_empty_store(client):
    stats = client.get("/api/invoices/stats").json()["data"]
    assert stats["totalInvoices"] == 0
    assert Decimal(str(stats["totalRevenue"])) == Decimal("0")


def test_healthz_and_metrics(client):
    health = client.get("/healthz")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    _create(client)
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "invoices_created_total" in metrics.text


def test_request_id_is_echoed(client):
    response = client.get("/api/invoices", headers={"X-Request-Id": "req-42"})
    assert response.headers["X-Request-Id"] == "req-42"
    assert client.get("/api/invoices").headers["X-Request-Id"]
