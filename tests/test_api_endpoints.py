"""HTTP-level tests for the payroll API."""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from usdc_payroll.api.app import create_app

from tests.conftest import make_settings, reload_item


def auth(user_id) -> dict[str, str]:
    return {"X-User-ID": str(user_id)}


def _client_for(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def client(session_factory, gateway):
    app = create_app(settings=make_settings(), session_factory=session_factory, chain_gateway=gateway)
    async with _client_for(app) as client:
        yield client


@pytest.fixture
async def unconfigured_client(session_factory):
    """App whose chain settings are missing."""
    app = create_app(settings=make_settings(chain_backend="web3"), session_factory=session_factory)
    async with _client_for(app) as client:
        yield client


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"
        assert body["chain"] == "stub"

    async def test_health_degraded_without_chain(self, unconfigured_client):
        body = (await unconfigured_client.get("/health")).json()
        assert body["status"] == "degraded"
        assert body["chain"] == "not_configured"

    async def test_ready_and_live(self, client):
        assert (await client.get("/ready")).json() == {"status": "ready"}
        assert (await client.get("/live")).json() == {"status": "alive"}


class TestIdentity:
    async def test_missing_user_header(self, client, test_data):
        item_id = uuid4()
        response = await client.post(f"/api/v1/payroll-items/{item_id}/pay")
        assert response.status_code == 401

    async def test_malformed_user_header(self, client, test_data):
        response = await client.post(
            f"/api/v1/payroll-items/{uuid4()}/pay", headers={"X-User-ID": "not-a-uuid"}
        )
        assert response.status_code == 400

    async def test_malformed_item_id(self, client, test_data):
        response = await client.post("/api/v1/payroll-items/xyz/pay", headers=auth(test_data.owner_id))
        assert response.status_code == 422


class TestPay:
    async def test_pay_submits_transfer(self, client, session, session_factory, test_data, gateway):
        item = await test_data.add_item(session, amount="42.5")

        response = await client.post(f"/api/v1/payroll-items/{item.id}/pay", headers=auth(test_data.owner_id))

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["status"] == "submitted"
        assert body["itemId"] == str(item.id)
        assert body["txHash"] == gateway.transfers[0].tx_hash
        assert gateway.transfers[0].amount_units == 42_500_000

        stored = await reload_item(session_factory, item.id)
        assert stored.tx_hash == body["txHash"]

    async def test_repeat_pay_is_idempotent(self, client, session, test_data, gateway):
        item = await test_data.add_item(session)
        url = f"/api/v1/payroll-items/{item.id}/pay"

        first = (await client.post(url, headers=auth(test_data.owner_id))).json()
        second = (await client.post(url, headers=auth(test_data.owner_id))).json()

        assert second["ok"] is True
        assert second["idempotent"] is True
        assert second["txHash"] == first["txHash"]
        assert len(gateway.transfers) == 1

    async def test_insufficient_balance_is_a_business_failure(self, client, session, test_data, gateway):
        gateway.set_balance(gateway.sender_address, 5_000_000)
        item = await test_data.add_item(session, amount="10")

        response = await client.post(f"/api/v1/payroll-items/{item.id}/pay", headers=auth(test_data.owner_id))

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["reason"] == "INSUFFICIENT_BALANCE"
        assert body["retryable"] is False
        assert Decimal(body["shortfall"]) == Decimal("5")
        assert body["sender"] == gateway.sender_address

    async def test_other_company_is_forbidden(self, client, session, test_data):
        item = await test_data.add_item(session)

        response = await client.post(
            f"/api/v1/payroll-items/{item.id}/pay", headers=auth(test_data.other_user_id)
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    async def test_unknown_item(self, client, test_data):
        response = await client.post(f"/api/v1/payroll-items/{uuid4()}/pay", headers=auth(test_data.owner_id))

        assert response.status_code == 404
        assert response.json() == {"detail": "Payroll item not found", "code": "NOT_FOUND"}

    async def test_missing_chain_config(self, unconfigured_client, session, test_data):
        item = await test_data.add_item(session)

        response = await unconfigured_client.post(
            f"/api/v1/payroll-items/{item.id}/pay", headers=auth(test_data.owner_id)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["reason"] == "MISSING_CONFIG"
        assert body["retryable"] is True


class TestConfirm:
    async def test_confirm_mined_item(self, client, session, test_data, gateway):
        item = await test_data.add_item(session, status="submitted")
        gateway.mine(item.tx_hash, block_number=7)

        response = await client.post(
            f"/api/v1/payroll-items/{item.id}/confirm", headers=auth(test_data.owner_id)
        )

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["mined"] is True
        assert body["status"] == "paid"
        assert body["blockNumber"] == 7
        assert body["paidAt"] is not None

    async def test_confirm_submitted_for_batch(self, client, session, test_data, gateway):
        mined = await test_data.add_item(session, status="submitted")
        await test_data.add_item(session, status="submitted")
        gateway.mine(mined.tx_hash)

        response = await client.post(
            "/api/v1/payroll-items/confirm-submitted",
            params={"batchId": str(test_data.batch.id)},
            headers=auth(test_data.owner_id),
        )

        body = response.json()
        assert body["ok"] is True
        assert body["batchId"] == str(test_data.batch.id)
        assert body["checked"] == 2
        assert body["minedPaid"] == 1
        assert body["notMined"] == 1

    async def test_confirm_submitted_requires_owner(self, client, test_data):
        response = await client.post(
            "/api/v1/payroll-items/confirm-submitted",
            params={"batchId": str(test_data.batch.id)},
            headers=auth(test_data.other_user_id),
        )
        assert response.status_code == 403

    async def test_confirm_submitted_without_chain(self, unconfigured_client, test_data):
        response = await unconfigured_client.post(
            "/api/v1/payroll-items/confirm-submitted",
            params={"batchId": str(test_data.batch.id)},
            headers=auth(test_data.owner_id),
        )
        body = response.json()
        assert body["ok"] is False
        assert body["reason"] == "MISSING_CONFIG"


class TestCron:
    URL = "/api/cron/confirm-payroll-items"

    async def test_bearer_secret(self, client, session, test_data, gateway):
        item = await test_data.add_item(session, status="submitted")
        gateway.mine(item.tx_hash, success=False)

        response = await client.post(self.URL, headers={"Authorization": "Bearer cron-test-secret"})

        assert response.status_code == 200
        body = response.json()
        assert body["checked"] == 1
        assert body["minedFailed"] == 1
        assert body["batchId"] is None

    async def test_header_secret(self, client, test_data):
        response = await client.post(self.URL, headers={"X-Cron-Secret": "cron-test-secret"})
        assert response.status_code == 200
        assert response.json()["checked"] == 0

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong"}, {"X-Cron-Secret": "wrong"}, {"Authorization": "cron-test-secret"}],
    )
    async def test_rejected_secrets(self, client, headers):
        response = await client.post(self.URL, headers=headers)
        assert response.status_code == 401

    async def test_unset_secret_rejects_everything(self, session_factory, gateway):
        app = create_app(
            settings=make_settings(cron_secret=None), session_factory=session_factory, chain_gateway=gateway
        )
        async with _client_for(app) as client:
            response = await client.post(self.URL, headers={"Authorization": "Bearer "})
        assert response.status_code == 401


class TestItems:
    async def test_create_item(self, client, test_data):
        response = await client.post(
            "/api/v1/payroll-items",
            json={
                "batchId": str(test_data.batch.id),
                "employeeId": str(test_data.employee.id),
                "amountUsdc": "12.5",
            },
            headers=auth(test_data.owner_id),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "created"
        assert body["txHash"] is None
        assert Decimal(body["amountUsdc"]) == Decimal("12.5")

    async def test_create_rejects_seven_decimals(self, client, test_data):
        response = await client.post(
            "/api/v1/payroll-items",
            json={
                "batchId": str(test_data.batch.id),
                "employeeId": str(test_data.employee.id),
                "amountUsdc": "1.0000001",
            },
            headers=auth(test_data.owner_id),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_create_rejects_zero(self, client, test_data):
        response = await client.post(
            "/api/v1/payroll-items",
            json={
                "batchId": str(test_data.batch.id),
                "employeeId": str(test_data.employee.id),
                "amountUsdc": "0",
            },
            headers=auth(test_data.owner_id),
        )
        assert response.status_code == 422

    async def test_list_batch_items(self, client, session, test_data):
        older = await test_data.add_item(session, amount="1")
        newer = await test_data.add_item(session, amount="2")

        response = await client.get(
            "/api/v1/payroll-items",
            params={"batchId": str(test_data.batch.id)},
            headers=auth(test_data.owner_id),
        )

        body = response.json()
        assert response.status_code == 200
        assert [i["id"] for i in body["items"]] == [str(newer.id), str(older.id)]
        assert body["employees"][0]["walletAddress"] == test_data.employee.wallet_address
        assert body["batch"]["title"] == "October payroll"


class TestMe:
    async def test_my_payroll(self, client, session, test_data):
        item = await test_data.add_item(session, status="paid")

        response = await client.get("/api/v1/me/payroll", headers=auth(test_data.employee_user_id))

        body = response.json()
        assert response.status_code == 200
        assert body["employee"]["id"] == str(test_data.employee.id)
        assert [i["id"] for i in body["items"]] == [str(item.id)]
        assert body["items"][0]["paidAt"] is not None

    async def test_no_linked_profile(self, client, test_data):
        response = await client.get("/api/v1/me/payroll", headers=auth(test_data.owner_id))
        assert response.status_code == 403

    async def test_my_payslip(self, client, session, test_data):
        item = await test_data.add_item(session, status="paid")

        response = await client.get(f"/api/v1/me/payroll/{item.id}", headers=auth(test_data.employee_user_id))

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["employee"]["id"] == str(test_data.employee.id)
        assert body["item"]["id"] == str(item.id)
        assert Decimal(body["item"]["amountUsdc"]) == Decimal("100")

    async def test_payslip_of_another_employee_is_not_found(self, client, session, test_data):
        _, stranger, batch = await test_data.add_company(session, test_data.other_user_id)
        theirs = await test_data.add_item(session, batch=batch, employee=stranger)

        response = await client.get(f"/api/v1/me/payroll/{theirs.id}", headers=auth(test_data.employee_user_id))

        assert response.status_code == 404
        assert response.json() == {"detail": "Payslip not found", "code": "NOT_FOUND"}

    async def test_payslip_without_linked_profile(self, client, session, test_data):
        item = await test_data.add_item(session)

        response = await client.get(f"/api/v1/me/payroll/{item.id}", headers=auth(test_data.owner_id))

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
