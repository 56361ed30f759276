import base64

from conftest import EXAMPLE_PREFIX
from pixqr import renderer
from pixqr.middleware import RESPONSE_TIME_HEADER
from pixqr.pix_encoder import verify_payload
from pixqr.services.charges import ChargeService

EXAMPLE_BODY = {
    "pix_key": "12345678900",
    "amount": "13.50",
    "merchant_name": "PDV Inteligente",
    "merchant_city": "SAO PAULO",
    "transaction_id": "TXID1700000000000",
}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_api_key_required(client):
    resp = client.post("/v1/pix/payload", json=EXAMPLE_BODY)
    assert resp.status_code == 422

    resp = client.post("/v1/pix/payload", json=EXAMPLE_BODY, headers={"X-API-Key": "wrong"})
    assert resp.status_code == 401


def test_generate_payload(client, auth_header, example_payload):
    resp = client.post("/v1/pix/payload", json=EXAMPLE_BODY, headers=auth_header)
    assert resp.status_code == 200
    body = resp.json()
    assert body["payload"] == example_payload
    assert body["crc"] == example_payload[-4:]


def test_generate_payload_missing_key(client, auth_header):
    resp = client.post("/v1/pix/payload", json={**EXAMPLE_BODY, "pix_key": "   "}, headers=auth_header)
    assert resp.status_code == 422
    assert resp.json()["code"] == "ERR_MISSING_FIELD"


def test_generate_payload_negative_amount(client, auth_header):
    resp = client.post("/v1/pix/payload", json={**EXAMPLE_BODY, "amount": "-1"}, headers=auth_header)
    assert resp.status_code == 422


def test_decode_payload(client, auth_header, example_payload):
    resp = client.post("/v1/pix/decode", json={"payload": example_payload}, headers=auth_header)
    assert resp.status_code == 200
    body = resp.json()
    assert body["crc_valid"] is True
    assert body["in_standard_order"] is True
    assert [field["tag"] for field in body["fields"]] == ["00", "26", "52", "53", "54", "58", "59", "60", "62", "63"]
    merchant_account = body["fields"][1]
    assert merchant_account["children"] == [
        {"tag": "00", "value": "BR.GOV.BCB.PIX", "children": None},
        {"tag": "01", "value": "12345678900", "children": None},
    ]


def test_decode_malformed_payload(client, auth_header):
    resp = client.post("/v1/pix/decode", json={"payload": EXAMPLE_PREFIX[:-6]}, headers=auth_header)
    assert resp.status_code == 400
    assert resp.json()["code"] == "ERR_INVALID_PAYLOAD"


def test_charge_lifecycle(client, auth_header):
    resp = client.post(
        "/v1/charges",
        json={"amount": "25.90", "transaction_id": "TXIDLIFECYCLE1", "merchant_name": "Açaí Ltda"},
        headers=auth_header,
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["txid"] == "TXIDLIFECYCLE1"
    assert body["status"] == "PENDING"
    assert body["merchant_name"] == "Acai Ltda"
    assert body["merchant_city"] == "SAO PAULO"
    assert verify_payload(body["payload"])
    assert base64.b64decode(body["qr_png_base64"]).startswith(b"\x89PNG")
    assert body["qr_data_url"] == "data:image/png;base64," + body["qr_png_base64"]
    assert body["render_error"] is None

    resp = client.get("/v1/charges/TXIDLIFECYCLE1", headers=auth_header)
    assert resp.status_code == 200
    assert resp.json()["payload"] == body["payload"]

    resp = client.get("/v1/charges/TXIDLIFECYCLE1/qr.png", headers=auth_header)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"

    resp = client.post("/v1/charges/TXIDLIFECYCLE1/confirm", json={"action": "SUCCESS"}, headers=auth_header)
    assert resp.status_code == 200
    assert resp.json() == {"txid": "TXIDLIFECYCLE1", "status": "PAID"}

    resp = client.post("/v1/charges/TXIDLIFECYCLE1/confirm", json={"action": "REJECTED"}, headers=auth_header)
    assert resp.status_code == 409
    assert resp.json()["code"] == "ERR_CHARGE_SETTLED"


def test_charge_rejected(client, auth_header):
    client.post("/v1/charges", json={"amount": "5", "transaction_id": "TXIDREJECT1"}, headers=auth_header)
    resp = client.post("/v1/charges/TXIDREJECT1/confirm", json={"action": "REJECTED"}, headers=auth_header)
    assert resp.json()["status"] == "REJECTED"


def test_charge_generates_transaction_id(client, auth_header):
    resp = client.post("/v1/charges", json={"amount": "1.00"}, headers=auth_header)
    assert resp.status_code == 201
    assert resp.json()["txid"].startswith("TXID")


def test_duplicate_charge(client, auth_header):
    body = {"amount": "3.00", "transaction_id": "TXIDDUPLICATE1"}
    assert client.post("/v1/charges", json=body, headers=auth_header).status_code == 201
    resp = client.post("/v1/charges", json=body, headers=auth_header)
    assert resp.status_code == 409
    assert resp.json()["code"] == "ERR_DUPLICATE_CHARGE"


def test_unknown_charge(client, auth_header):
    resp = client.get("/v1/charges/NOPE", headers=auth_header)
    assert resp.status_code == 404
    assert resp.json()["code"] == "ERR_CHARGE_NOT_FOUND"


def test_charge_survives_render_failure(client, auth_header, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("renderer offline")

    monkeypatch.setattr(renderer, "generate_qr_image", broken)
    resp = client.post("/v1/charges", json={"amount": "9.99", "transaction_id": "TXIDNORENDER1"}, headers=auth_header)
    assert resp.status_code == 201
    body = resp.json()
    assert body["qr_png_base64"] is None
    assert "renderer offline" in body["render_error"]
    assert verify_payload(body["payload"])

    resp = client.get("/v1/charges/TXIDNORENDER1/qr.png", headers=auth_header)
    assert resp.status_code == 503
    assert resp.json()["code"] == "ERR_RENDERING_UNAVAILABLE"


def test_metrics_exposes_payload_counter(client, auth_header):
    client.post("/v1/pix/payload", json=EXAMPLE_BODY, headers=auth_header)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "pixqr_payloads_generated_total" in resp.text


def test_charge_with_empty_pix_key_is_rejected(client, auth_header):
    resp = client.post(
        "/v1/charges",
        json={"amount": "1.00", "transaction_id": "TXIDEMPTYKEY1", "pix_key": ""},
        headers=auth_header,
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "ERR_MISSING_FIELD"

    resp = client.get("/v1/charges/TXIDEMPTYKEY1", headers=auth_header)
    assert resp.status_code == 404


def test_charge_with_empty_merchant_name_is_rejected(client, auth_header):
    resp = client.post(
        "/v1/charges",
        json={"amount": "1.00", "transaction_id": "TXIDEMPTYNAME1", "merchant_name": ""},
        headers=auth_header,
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "ERR_MISSING_FIELD"


def test_concurrent_duplicate_charge_hits_unique_constraint(client, auth_header, monkeypatch):
    async def not_found(self, txid):
        return None

    body = {"amount": "4.00", "transaction_id": "TXIDRACE1"}
    assert client.post("/v1/charges", json=body, headers=auth_header).status_code == 201

    monkeypatch.setattr(ChargeService, "_fetch_charge", not_found)
    resp = client.post("/v1/charges", json=body, headers=auth_header)
    assert resp.status_code == 409
    assert resp.json()["code"] == "ERR_DUPLICATE_CHARGE"


def test_response_time_header(client):
    resp = client.get("/health")
    assert float(resp.headers[RESPONSE_TIME_HEADER]) >= 0
