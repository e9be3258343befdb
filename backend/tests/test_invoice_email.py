from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from backoffice.core.errors import EmailNotConfiguredError, EmailSendError
from backoffice.core.settings import settings
from backoffice.services import email as email_transport
from backoffice.services import invoice_email as invoice_email_service


def _create(client):
    response = client.post(
        "/api/invoices",
        json={
            "client": "Studio Atlas",
            "project": "Documentaire Atlas",
            "issueDate": "2024-03-01",
            "dueDate": "2024-04-01",
            "items": [{"description": "Tournage", "unitPrice": 1000, "quantity": 2}],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture()
def smtp_configured(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "smtp")
    monkeypatch.setattr(settings, "email_from", "factures@nomedia.ma")
    monkeypatch.setattr(settings, "smtp_host", "smtp.nomedia.ma")


@pytest.fixture()
def sent(monkeypatch):
    outbox = []

    def fake_send_email(**kwargs):
        outbox.append(kwargs)
        return email_transport.EmailSendResult(provider="smtp", message_id="<test@nomedia.ma>")

    monkeypatch.setattr(email_transport, "send_email", fake_send_email)
    return outbox


def test_recipient_fields_are_required(client):
    invoice = _create(client)
    response = client.post(f"/api/invoices/{invoice['id']}/send-email", json={"clientEmail": "client@nomedia.ma"})
    assert response.status_code == 400
    assert response.json()["message"] == "Email du client et nom requis"


def test_recipient_email_must_be_valid(client):
    invoice = _create(client)
    response = client.post(
        f"/api/invoices/{invoice['id']}/send-email",
        json={"clientEmail": "pas-une-adresse", "clientName": "Studio Atlas"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Adresse email invalide"


def test_unknown_invoice_is_checked_before_transport(client):
    response = client.post(
        "/api/invoices/9999/send-email",
        json={"clientEmail": "client@nomedia.ma", "clientName": "Studio Atlas"},
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Facture non trouvée"


def test_unconfigured_transport_fails_fast(client, sent):
    invoice = _create(client)
    response = client.post(
        f"/api/invoices/{invoice['id']}/send-email",
        json={"clientEmail": "client@nomedia.ma", "clientName": "Studio Atlas"},
    )
    assert response.status_code == 503
    assert response.json()["message"] == "Service email non configuré. Veuillez contacter l'administrateur."
    assert sent == []


def test_send_invoice_email_attaches_pdf(client, smtp_configured, sent):
    invoice = _create(client)

    response = client.post(
        f"/api/invoices/{invoice['id']}/send-email",
        json={"clientEmail": "client@nomedia.ma", "clientName": "Studio Atlas"},
    )
    assert response.status_code == 200, response.text
    assert response.json() == {
        "success": True,
        "message": "Facture envoyée avec succès à client@nomedia.ma",
    }

    assert len(sent) == 1
    message = sent[0]
    number = invoice["invoiceNumber"]
    assert message["to_address"] == "client@nomedia.ma"
    assert number in message["subject"]
    assert "Bonjour Studio Atlas" in message["html"]
    assert "2 400,00 MAD" in message["text"]
    attachment = message["attachments"][0]
    assert attachment.filename == f"Facture_{number}.pdf"
    assert attachment.content_type == "application/pdf"
    assert attachment.content.startswith(b"%PDF")

    refreshed = client.get(f"/api/invoices/{invoice['id']}").json()["data"]
    assert refreshed["updatedAt"] != invoice["updatedAt"]


def test_delivered_email_survives_failed_timestamp_write(client, smtp_configured, sent, monkeypatch):
    def broken_touch(db, invoice):
        raise OperationalError("UPDATE invoices", {}, Exception("database is locked"))

    monkeypatch.setattr(invoice_email_service, "touch_invoice", broken_touch)
    invoice = _create(client)

    response = client.post(
        f"/api/invoices/{invoice['id']}/send-email",
        json={"clientEmail": "client@nomedia.ma", "clientName": "Studio Atlas"},
    )
    assert response.status_code == 200, response.text
    assert response.json()["message"] == "Facture envoyée avec succès à client@nomedia.ma"
    assert len(sent) == 1


def test_transport_failure_leaves_invoice_untouched(client, smtp_configured, monkeypatch):
    def failing_send_email(**kwargs):
        raise EmailSendError(error="SMTP error: connection refused")

    monkeypatch.setattr(email_transport, "send_email", failing_send_email)
    invoice = _create(client)

    response = client.post(
        f"/api/invoices/{invoice['id']}/send-email",
        json={"clientEmail": "client@nomedia.ma", "clientName": "Studio Atlas"},
    )
    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Échec de l'envoi de l'email. Veuillez réessayer."
    assert body["error"] == "SMTP error: connection refused"

    refreshed = client.get(f"/api/invoices/{invoice['id']}").json()["data"]
    assert refreshed["updatedAt"] == invoice["updatedAt"]


def test_transport_readiness_by_provider(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "disabled")
    assert email_transport.email_is_configured() is False

    monkeypatch.setattr(settings, "email_provider", "resend")
    monkeypatch.setattr(settings, "email_from", "factures@nomedia.ma")
    monkeypatch.setattr(settings, "email_api_key", None)
    assert email_transport.email_is_configured() is False

    monkeypatch.setattr(settings, "email_api_key", "re_test_key")
    assert email_transport.email_is_configured() is True


def test_disabled_transport_refuses_to_send(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "disabled")
    with pytest.raises(EmailNotConfiguredError):
        email_transport.send_email(to_address="client@nomedia.ma", subject="Facture", html="<p>Facture</p>")
