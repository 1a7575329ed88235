"""Tests for the HTTP surface of the contract service."""

import pytest

from aquacare.settings import settings


@pytest.fixture
async def buyer(make_account, make_plan, make_product):
    """A portal user plus a product carrying a two-visit AMC plan."""
    plan = await make_plan(service_quota=2)
    product = await make_product(plan_ids=[plan.id])
    account = await make_account()
    return account, product, plan


async def complete_order(client, account, product, plan, order_id="ORD-500"):
    response = await client.post(
        "/workers/order-completed",
        json={
            "order_id": order_id,
            "account_id": account.id,
            "items": [{"product": {"kind": product.kind, "id": product.id}, "plan_id": plan.id, "amount": plan.price}],
        },
    )
    assert response.status_code == 200
    return response.json()


class TestAuth:
    """Tests for authentication on portal routes."""

    @pytest.mark.asyncio
    async def test_invalid_token_is_rejected(self, client):
        """Test that a garbage bearer token is 401."""
        response = await client.get("/api/v1/contracts", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_stale_token_version_is_rejected(self, client, make_account, auth_headers, db_session):
        """Test that bumping token_version logs out old sessions."""
        account = await make_account()
        headers = auth_headers(account)
        account.token_version = 1
        await db_session.commit()

        response = await client.get("/api/v1/contracts", headers=headers)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_routes_need_admin_role(self, client, make_account, auth_headers):
        """Test that a portal user cannot reach the admin panel."""
        account = await make_account()

        response = await client.get("/api/v1/admin/dashboard", headers=auth_headers(account))

        assert response.status_code == 403


class TestPortalRoutes:
    """Tests for the user portal endpoints."""

    @pytest.mark.asyncio
    async def test_order_then_list(self, client, buyer, auth_headers):
        """Test that a worker-created contract shows in the user's list."""
        account, product, plan = buyer
        report = await complete_order(client, account, product, plan)

        response = await client.get("/api/v1/contracts", headers=auth_headers(account))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["contract_code"] == report["created"][0]
        assert data["items"][0]["services_remaining"] == 2

    @pytest.mark.asyncio
    async def test_quota_exhausted_is_422(self, client, buyer, auth_headers):
        """Test that the third visit on a two-visit plan returns the renewal prompt."""
        account, product, plan = buyer
        code = (await complete_order(client, account, product, plan))["created"][0]
        url = f"/api/v1/contracts/{code}/service-request"
        headers = auth_headers(account)

        first = await client.post(url, json={"notes": "Low flow"}, headers=headers)
        second = await client.post(url, json={}, headers=headers)
        third = await client.post(url, json={}, headers=headers)

        assert first.status_code == 201
        assert first.json()["services_remaining"] == 1
        assert first.json()["ticket_code"] == first.json()["visit"]["ticket_code"]
        assert second.status_code == 201
        assert third.status_code == 422
        assert third.json()["detail"]["error"] == "QuotaExhausted"
        assert "renew" in third.json()["detail"]["message"]

    @pytest.mark.asyncio
    async def test_unknown_contract_is_404(self, client, make_account, auth_headers):
        """Test that a missing contract code is 404."""
        account = await make_account()

        response = await client.get("/api/v1/contracts/AMC-NOPE", headers=auth_headers(account))

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFound"

    @pytest.mark.asyncio
    async def test_double_cancel_is_409(self, client, buyer, auth_headers):
        """Test that cancelling a cancelled contract is a conflict."""
        account, product, plan = buyer
        code = (await complete_order(client, account, product, plan))["created"][0]
        headers = auth_headers(account)

        first = await client.post(f"/api/v1/contracts/{code}/cancel", json={"reason": "Moving"}, headers=headers)
        second = await client.post(f"/api/v1/contracts/{code}/cancel", json={}, headers=headers)

        assert first.status_code == 200
        assert first.json()["status"] == "Cancelled"
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_current_amc_and_service_requests(self, client, buyer, auth_headers):
        """Test the current AMC endpoint and the merged request list."""
        account, product, plan = buyer
        code = (await complete_order(client, account, product, plan))["created"][0]
        headers = auth_headers(account)
        await client.post(f"/api/v1/contracts/{code}/service-request", json={}, headers=headers)

        current = await client.get("/api/v1/contracts/current/amc", headers=headers)
        requests = await client.get("/api/v1/service-requests", headers=headers)

        assert current.json()["contract_code"] == code
        assert len(requests.json()) == 1
        assert requests.json()[0]["source"] == "ticket"

    @pytest.mark.asyncio
    async def test_enquiry_without_contract(self, client, make_account, auth_headers):
        """Test that a portal user with no contract can open an enquiry."""
        account = await make_account()
        headers = auth_headers(account)

        created = await client.post(
            "/api/v1/service-requests", json={"description": "Need a water test"}, headers=headers
        )
        listed = await client.get("/api/v1/service-requests", headers=headers)

        assert created.status_code == 201
        assert created.json()["source"] == "ticket"
        assert [r["ticket_code"] for r in listed.json()] == [created.json()["ticket_code"]]


class TestWorkerRoutes:
    """Tests for the order service and scheduler hooks."""

    @pytest.mark.asyncio
    async def test_redelivered_order_is_idempotent(self, client, buyer):
        """Test that a retried webhook reports the contract as already created."""
        account, product, plan = buyer

        first = await complete_order(client, account, product, plan, order_id="ORD-501")
        second = await complete_order(client, account, product, plan, order_id="ORD-501")

        assert second["created"] == []
        assert second["already_created"] == first["created"]

    @pytest.mark.asyncio
    async def test_order_cancelled_and_sweep(self, client, buyer):
        """Test the cancel hook and an expiry sweep with nothing to do."""
        account, product, plan = buyer
        code = (await complete_order(client, account, product, plan, order_id="ORD-502"))["created"][0]

        cancelled = await client.post("/workers/order-cancelled", json={"order_id": "ORD-502", "reason": "Returned"})
        sweep = await client.post("/workers/expiry-sweep", json={"now": "2024-01-01T00:00:00"})

        assert cancelled.json()["cancelled"] == [code]
        assert sweep.json()["expired_contracts"] == 0

    @pytest.mark.asyncio
    async def test_worker_token_enforced_when_configured(self, client, monkeypatch):
        """Test that hooks reject calls without the shared secret."""
        monkeypatch.setattr(settings, "worker_token", "s3cret")

        rejected = await client.post("/workers/expiry-sweep")
        accepted = await client.post("/workers/expiry-sweep", headers={"X-Worker-Token": "s3cret"})

        assert rejected.status_code == 403
        assert accepted.status_code == 200


class TestAdminRoutes:
    """Tests for the admin panel endpoints."""

    @pytest.mark.asyncio
    async def test_create_amc_and_read_customer(self, client, make_account, make_profile, make_plan, auth_headers):
        """Test installing an AMC from the admin form."""
        admin = await make_account(phone="+91 90000-99999", role="admin", first_name="Admin")
        profile = await make_profile()
        plan = await make_plan()
        headers = auth_headers(admin)

        created = await client.post(
            f"/api/v1/admin/customers/{profile.customer_code}/amc",
            json={"plan_id": plan.id, "payment_mode": "Cash"},
            headers=headers,
        )
        customer = await client.get(f"/api/v1/admin/customers/{profile.customer_code}", headers=headers)

        assert created.status_code == 201
        assert created.json()["services_total"] == 4
        assert customer.json()["amc"]["contract_code"] == created.json()["contract_code"]
        assert customer.json()["type"] == "AMC Customer"

    @pytest.mark.asyncio
    async def test_unknown_action_is_rejected_by_validation(self, client, make_account, auth_headers):
        """Test that the transition body only accepts known actions."""
        admin = await make_account(phone="+91 90000-99999", role="admin")

        response = await client.post(
            "/api/v1/admin/contracts/AMC-X/transition",
            json={"action": "explode"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_register_customer_and_log_complaint(self, client, make_account, auth_headers):
        """Test the walk-in flow: register, log a complaint, reject a duplicate mobile."""
        admin = await make_account(phone="+91 90000-99999", role="admin", first_name="Admin")
        headers = auth_headers(admin)

        created = await client.post(
            "/api/v1/admin/customers",
            json={"name": "Meena Iyer", "mobile": "+91 93333-33333"},
            headers=headers,
        )
        code = created.json()["customer_code"]
        ticket = await client.post(
            f"/api/v1/admin/customers/{code}/tickets",
            json={"description": "Low water flow", "type": "Repair"},
            headers=headers,
        )
        duplicate = await client.post(
            "/api/v1/admin/customers",
            json={"name": "M. Iyer", "mobile": "093333 33333"},
            headers=headers,
        )

        assert created.status_code == 201
        assert ticket.status_code == 201
        assert ticket.json()["customer_code"] == code
        assert ticket.json()["linked_visit"] is False
        assert duplicate.status_code == 409
