"""HTTP surface tests — auth, problem+json errors, lifecycle and holiday routes."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from httpx import AsyncClient

from leavedesk.common.constants import LeaveStatus, UserRole
from tests.conftest import (
    _seed_balance,
    _seed_holiday,
    _seed_request,
    _seed_user,
    auth_headers_for,
    create_access_token,
)

LEAVE = "/api/v1/leave"
HOLIDAYS = "/api/v1/holidays"

# 2030-04-01 is a Monday
MON = "2030-04-01"
FRI = "2030-04-05"


# ── Health / auth ───────────────────────────────────────────────────

async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


async def test_missing_token_is_401(client: AsyncClient):
    resp = await client.get(f"{LEAVE}/balances")
    assert resp.status_code == 401


async def test_expired_token_is_401(client: AsyncClient, db, people):
    await db.commit()
    token = create_access_token(people["employee"].id, expired=True)
    resp = await client.get(
        f"{LEAVE}/balances", headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401


async def test_archived_user_is_403(client: AsyncClient, db, people):
    people["employee"].is_active = False
    await db.commit()
    resp = await client.get(f"{LEAVE}/balances", headers=auth_headers_for(people["employee"]))
    assert resp.status_code == 403
    assert resp.headers["content-type"].startswith("application/problem+json")


# ── Lifecycle over HTTP ─────────────────────────────────────────────

class TestLifecycleFlow:

    async def test_create_approve_deduct_reverse(self, client: AsyncClient, db, people, annual_leave):
        await _seed_balance(db, people["employee"].id, annual_leave.id)
        await db.commit()
        emp_h = auth_headers_for(people["employee"])
        mgr_h = auth_headers_for(people["manager"])

        resp = await client.post(
            f"{LEAVE}/requests",
            json={"leave_type_id": str(annual_leave.id), "start_date": MON, "end_date": FRI},
            headers=emp_h,
        )
        assert resp.status_code == 201, resp.text
        created = resp.json()
        assert created["status"] == "pending"
        assert Decimal(str(created["requested_days"])) == Decimal("5")
        request_id = created["id"]

        resp = await client.post(f"{LEAVE}/requests/{request_id}/approve", headers=mgr_h)
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "approved"

        resp = await client.post(f"{LEAVE}/requests/{request_id}/deduct", headers=mgr_h)
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["request"]["status"] == "deducted"
        assert Decimal(str(body["deducted_days"])) == Decimal("5")
        assert Decimal(str(body["remaining"])) == Decimal("9")
        assert body["negative_balance"] is False

        resp = await client.get(f"{LEAVE}/balances", headers=emp_h)
        assert resp.status_code == 200
        assert Decimal(str(resp.json()[0]["remaining"])) == Decimal("9")

        resp = await client.post(f"{LEAVE}/requests/{request_id}/reverse", headers=mgr_h)
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "approved"

        resp = await client.get(f"{LEAVE}/balances", headers=emp_h)
        assert Decimal(str(resp.json()[0]["remaining"])) == Decimal("14")

    async def test_double_deduct_is_409_problem(self, client: AsyncClient, db, people, annual_leave):
        await _seed_balance(db, people["employee"].id, annual_leave.id, used=Decimal("5"))
        req = await _seed_request(
            db, people["employee"], annual_leave.id,
            date(2030, 4, 1), date(2030, 4, 5),
            status=LeaveStatus.deducted,
            requested_days=Decimal("5"), deducted_days=Decimal("5"),
        )
        await db.commit()

        resp = await client.post(
            f"{LEAVE}/requests/{req.id}/deduct", headers=auth_headers_for(people["manager"]),
        )

        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith("application/problem+json")
        problem = resp.json()
        assert problem["type"].endswith("/invalid-transition")
        assert problem["instance"] == f"{LEAVE}/requests/{req.id}/deduct"

    async def test_employee_cannot_deduct(self, client: AsyncClient, db, people, annual_leave):
        req = await _seed_request(
            db, people["employee"], annual_leave.id,
            date(2030, 4, 1), date(2030, 4, 1),
            status=LeaveStatus.approved,
        )
        await db.commit()

        resp = await client.post(
            f"{LEAVE}/requests/{req.id}/deduct", headers=auth_headers_for(people["employee"]),
        )
        assert resp.status_code == 403

    async def test_reject_with_reason(self, client: AsyncClient, db, people, annual_leave):
        req = await _seed_request(
            db, people["employee"], annual_leave.id,
            date(2030, 4, 1), date(2030, 4, 1),
        )
        await db.commit()

        resp = await client.post(
            f"{LEAVE}/requests/{req.id}/reject",
            json={"reason": "Release week"},
            headers=auth_headers_for(people["manager"]),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"

    async def test_invalid_body_is_422_problem(self, client: AsyncClient, db, people, annual_leave):
        await db.commit()
        resp = await client.post(
            f"{LEAVE}/requests",
            json={"leave_type_id": str(annual_leave.id), "start_date": FRI, "end_date": MON},
            headers=auth_headers_for(people["employee"]),
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/validation-error")

    async def test_team_listing_for_manager(self, client: AsyncClient, db, people, annual_leave):
        await _seed_request(
            db, people["employee"], annual_leave.id,
            date(2030, 4, 1), date(2030, 4, 1),
        )
        await _seed_request(
            db, people["stranger"], annual_leave.id,
            date(2030, 4, 1), date(2030, 4, 1),
        )
        await db.commit()

        resp = await client.get(f"{LEAVE}/requests/team", headers=auth_headers_for(people["manager"]))

        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["email"] == people["employee"].email

    async def test_all_listing_is_admin_only(self, client: AsyncClient, db, people):
        await db.commit()
        resp = await client.get(f"{LEAVE}/requests", headers=auth_headers_for(people["manager"]))
        assert resp.status_code == 403
        resp = await client.get(f"{LEAVE}/requests", headers=auth_headers_for(people["admin"]))
        assert resp.status_code == 200

    async def test_approver_of_record_without_manager_role(self, client: AsyncClient, db, annual_leave):
        """Reviewer rights follow manager_email, not the directory role."""
        lead = await _seed_user(
            db, email="team.lead@leavedesk.io", name="Team Lead", manager_email=None,
        )
        member = await _seed_user(
            db, email="team.member@leavedesk.io", name="Team Member",
            manager_email="Team.Lead@leavedesk.io",
        )
        req = await _seed_request(db, member, annual_leave.id, date(2030, 4, 1), date(2030, 4, 1))
        await db.commit()
        lead_h = auth_headers_for(lead)

        resp = await client.get(f"{LEAVE}/requests/team", headers=lead_h)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()["data"]] == [str(req.id)]

        resp = await client.post(f"{LEAVE}/requests/{req.id}/approve", headers=lead_h)
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "approved"

    async def test_manager_role_alone_cannot_approve(self, client: AsyncClient, db, people, annual_leave):
        other_manager = await _seed_user(
            db, email="other.manager@leavedesk.io", name="Other Manager",
            role=UserRole.manager, manager_email=None,
        )
        req = await _seed_request(
            db, people["employee"], annual_leave.id, date(2030, 4, 1), date(2030, 4, 1),
        )
        await db.commit()

        resp = await client.post(
            f"{LEAVE}/requests/{req.id}/approve", headers=auth_headers_for(other_manager),
        )
        assert resp.status_code == 403


# ── Balances ────────────────────────────────────────────────────────

class TestBalanceRoutes:

    async def test_admin_assigns_balance(self, client: AsyncClient, db, people, annual_leave):
        await db.commit()
        resp = await client.put(
            f"{LEAVE}/balances/{people['employee'].id}",
            json={"leave_type_id": str(annual_leave.id), "remaining": "20"},
            headers=auth_headers_for(people["admin"]),
        )
        assert resp.status_code == 200, resp.text
        assert Decimal(str(resp.json()["remaining"])) == Decimal("20")

        resp = await client.get(
            f"{LEAVE}/balances/{people['employee'].id}",
            headers=auth_headers_for(people["admin"]),
        )
        assert Decimal(str(resp.json()[0]["remaining"])) == Decimal("20")

    async def test_manager_cannot_assign(self, client: AsyncClient, db, people, annual_leave):
        await db.commit()
        resp = await client.put(
            f"{LEAVE}/balances/{people['employee'].id}",
            json={"leave_type_id": str(annual_leave.id), "remaining": "20"},
            headers=auth_headers_for(people["manager"]),
        )
        assert resp.status_code == 403


# ── Holidays ────────────────────────────────────────────────────────

class TestHolidayRoutes:

    async def test_list_holidays_by_year(self, client: AsyncClient, db, people):
        await _seed_holiday(db, date(2030, 1, 1), name="New Year")
        await _seed_holiday(db, date(2031, 1, 1), name="New Year")
        await db.commit()

        resp = await client.get(
            HOLIDAYS, params={"year": 2030}, headers=auth_headers_for(people["employee"]),
        )

        assert resp.status_code == 200
        assert [h["date"] for h in resp.json()] == ["2030-01-01"]

    async def test_create_holiday_previews_impact(self, client: AsyncClient, db, people, annual_leave):
        await _seed_balance(db, people["employee"].id, annual_leave.id, used=Decimal("5"))
        await _seed_request(
            db, people["employee"], annual_leave.id,
            date(2030, 4, 1), date(2030, 4, 5),
            status=LeaveStatus.deducted,
            requested_days=Decimal("5"), deducted_days=Decimal("5"),
        )
        await db.commit()

        resp = await client.post(
            HOLIDAYS,
            json={"date": "2030-04-03", "name": "Founders Day"},
            headers=auth_headers_for(people["admin"]),
        )

        assert resp.status_code == 201, resp.text
        impact = resp.json()["impact"]
        assert impact["dry_run"] is True
        assert impact["changed"] == 1
        assert Decimal(str(impact["changes"][0]["delta"])) == Decimal("-1")

    async def test_duplicate_holiday_is_409(self, client: AsyncClient, db, people):
        await _seed_holiday(db, date(2030, 1, 1))
        await db.commit()
        resp = await client.post(
            HOLIDAYS,
            json={"date": "2030-01-01", "name": "Again"},
            headers=auth_headers_for(people["admin"]),
        )
        assert resp.status_code == 409

    async def test_employee_cannot_create_holiday(self, client: AsyncClient, db, people):
        await db.commit()
        resp = await client.post(
            HOLIDAYS,
            json={"date": "2030-01-01", "name": "Nope"},
            headers=auth_headers_for(people["employee"]),
        )
        assert resp.status_code == 403

    async def test_reconcile_defaults_to_dry_run(self, client: AsyncClient, db, people, annual_leave):
        await _seed_balance(db, people["employee"].id, annual_leave.id, used=Decimal("5"))
        await _seed_request(
            db, people["employee"], annual_leave.id,
            date(2030, 4, 1), date(2030, 4, 5),
            status=LeaveStatus.deducted,
            requested_days=Decimal("5"), deducted_days=Decimal("5"),
        )
        await _seed_holiday(db, date(2030, 4, 2))
        await db.commit()

        resp = await client.post(
            f"{HOLIDAYS}/reconcile",
            json={"holiday_date": "2030-04-02"},
            headers=auth_headers_for(people["admin"]),
        )

        assert resp.status_code == 200, resp.text
        report = resp.json()
        assert report["dry_run"] is True
        assert report["changed"] == 1
        assert report["applied"] == 0
