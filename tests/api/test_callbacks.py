"""
Tests for the gateway webhook.

Whatever arrives, the gateway must get a 200 so it stops
redelivering.
"""

from mobile_payments.models.enums import PaymentLeg


def create(client, gross_amount=10_000):
    return client.post("/payments", json={
        "payer_reference": "254711000001",
        "payee_reference": "254722000002",
        "gross_amount": gross_amount,
    }).json()


def post_callback(client, **body):
    return client.post("/payments/callbacks", json=body)


class TestAcknowledgement:

    def test_applied_callback(self, client):
        payment = create(client)

        response = post_callback(
            client,
            request_id=payment["collection_request_id"],
            leg="collection",
            outcome="success",
            reported_amount=10_000,
        )

        assert response.status_code == 200
        assert response.json() == {"status": "acknowledged", "result": "applied"}

    def test_duplicate_callback(self, client):
        payment = create(client)
        body = dict(
            request_id=payment["collection_request_id"],
            leg="collection",
            outcome="success",
            reported_amount=10_000,
        )

        post_callback(client, **body)
        response = post_callback(client, **body)

        assert response.status_code == 200
        assert response.json()["result"] == "duplicate"

    def test_unknown_transaction(self, client):
        response = post_callback(
            client,
            request_id="SOMEONE-ELSES",
            leg="collection",
            outcome="success",
            reported_amount=10_000,
        )

        assert response.status_code == 200
        assert response.json()["result"] == "unknown_transaction"

    def test_amount_mismatch(self, client):
        payment = create(client)

        response = post_callback(
            client,
            request_id=payment["collection_request_id"],
            leg="collection",
            outcome="success",
            reported_amount=1,
        )

        assert response.status_code == 200
        assert response.json()["result"] == "amount_mismatch"
        assert client.get(f"/payments/{payment['id']}").json()["status"] == (
            "COLLECTION_PENDING"
        )

    def test_malformed_payload(self, client):
        response = post_callback(client, request_id="X", leg="teleport")

        assert response.status_code == 200
        assert response.json()["result"] == "malformed"

    def test_non_json_body(self, client):
        response = client.post(
            "/payments/callbacks",
            content=b"not json at all",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["result"] == "malformed"

    def test_disbursement_failure_triggers_reversal(self, client, gateway):
        payment = create(client)
        post_callback(
            client,
            request_id=payment["collection_request_id"],
            leg="collection",
            outcome="success",
            reported_amount=10_000,
        )
        payment = client.get(f"/payments/{payment['id']}").json()

        response = post_callback(
            client,
            request_id=payment["disbursement_request_id"],
            leg="disbursement",
            outcome="failure",
            reported_amount=9_500,
            failure_reason="Recipient wallet full",
        )

        assert response.json()["result"] == "applied"
        payment = client.get(f"/payments/{payment['id']}").json()
        assert payment["status"] == "REVERSAL_PENDING"
        assert payment["failure_reason"] == "Recipient wallet full"
        assert len(gateway.calls(PaymentLeg.REVERSAL)) == 1
