"""HTTP tests for /api/v1/billing."""

from tutordesk.core.enums import LessonStatus

from tests._utils.clock import local_utc

BASE = "/api/v1/billing"


def _invoice(client, headers, parent_id, month="2026-04-01"):
    return client.post(f"{BASE}/invoices", json={"parent_id": parent_id, "month": month}, headers=headers)


class TestInvoices:
    def test_generate_then_duplicate(self, client, headers, family, math_rates, make_lesson):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, LessonStatus.COMPLETED)

        created = _invoice(client, headers, parent.id)
        assert created.status_code == 201
        body = created.json()
        assert body["amount_due"] == 70.0
        assert body["status"] == "unpaid"
        assert len(body["lessons"]) == 1

        duplicate = _invoice(client, headers, parent.id, "2026-04-30")
        assert duplicate.status_code == 409
        problem = duplicate.json()
        assert problem["code"] == "INVOICE_ALREADY_EXISTS"
        assert problem["title"] == "Conflict"
        assert problem["instance"] == f"{BASE}/invoices"
        assert problem["errors"] == {"parent_id": parent.id, "month": "2026-04-01"}

    def test_nothing_to_invoice(self, client, headers, family):
        parent, _, _ = family

        response = _invoice(client, headers, parent.id)

        assert response.status_code == 422
        assert response.json()["code"] == "NOTHING_TO_INVOICE"

    def test_unknown_parent(self, client, headers):
        response = _invoice(client, headers, "01UNKNOWN00000000000000000")
        assert response.status_code == 404
        assert response.json()["code"] == "PARENT_NOT_FOUND"

    def test_preview(self, client, headers, family, math_rates, make_lesson):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, LessonStatus.COMPLETED)

        response = client.get(
            f"{BASE}/invoices/preview", params={"parent_id": parent.id, "month": "2026-04-09"}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["total_amount"] == 70.0
        assert response.json()["lessons"][0]["rate_display"] == "$35/30min"

    def test_extra_fields_are_rejected(self, client, headers, family):
        parent, _, _ = family
        response = client.post(
            f"{BASE}/invoices",
            json={"parent_id": parent.id, "month": "2026-04-01", "amount": 5},
            headers=headers,
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"


class TestPayments:
    def _create(self, client, headers, family, make_lesson):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, LessonStatus.COMPLETED)
        return _invoice(client, headers, parent.id).json()

    def test_record_and_mark_paid(self, client, headers, family, math_rates, make_lesson):
        invoice = self._create(client, headers, family, make_lesson)

        partial = client.post(f"{BASE}/payments/{invoice['id']}/record", json={"amount_paid": 20}, headers=headers)
        assert partial.status_code == 200
        assert partial.json()["status"] == "partial"

        paid = client.post(f"{BASE}/payments/{invoice['id']}/mark-paid", headers=headers)
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"
        assert paid.json()["amount_paid"] == 70.0
        assert paid.json()["paid_at"] is not None

    def test_negative_amount_fails_validation(self, client, headers, family, math_rates, make_lesson):
        invoice = self._create(client, headers, family, make_lesson)

        response = client.post(
            f"{BASE}/payments/{invoice['id']}/record", json={"amount_paid": -5}, headers=headers
        )

        assert response.status_code == 422

    def test_list_filters_and_totals(self, client, headers, family, math_rates, make_lesson):
        invoice = self._create(client, headers, family, make_lesson)

        unpaid = client.get(f"{BASE}/payments", params={"status": "unpaid"}, headers=headers)
        assert [p["id"] for p in unpaid.json()] == [invoice["id"]]
        paid = client.get(f"{BASE}/payments", params={"status": "paid"}, headers=headers)
        assert paid.json() == []

        totals = client.get(f"{BASE}/payments/totals", params={"month": "2026-04-20"}, headers=headers)
        assert totals.json()["outstanding"] == 70.0
        assert totals.json()["counts"]["unpaid"] == 1

    def test_get_and_delete(self, client, headers, family, math_rates, make_lesson):
        invoice = self._create(client, headers, family, make_lesson)

        fetched = client.get(f"{BASE}/payments/{invoice['id']}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json()["lessons"][0]["subject"] == "math"

        deleted = client.delete(f"{BASE}/payments/{invoice['id']}", headers=headers)
        assert deleted.status_code == 204

        missing = client.get(f"{BASE}/payments/{invoice['id']}", headers=headers)
        assert missing.status_code == 404
        assert missing.json()["code"] == "PAYMENT_NOT_FOUND"

    def test_other_tutor_cannot_see_payment(self, client, headers, family, math_rates, make_lesson):
        invoice = self._create(client, headers, family, make_lesson)

        response = client.get(
            f"{BASE}/payments/{invoice['id']}", headers={"X-Tutor-Id": "01OTHERTUTOR0000000000000A"}
        )

        assert response.status_code == 404

    def test_overdue_endpoint_responds(self, client, headers):
        response = client.get(f"{BASE}/payments/overdue", headers=headers)
        assert response.status_code == 200
        assert response.json() == []


class TestSummary:
    def test_monthly_summary(self, client, headers, family, math_rates, make_lesson):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, LessonStatus.COMPLETED)
        make_lesson(ava, "math", local_utc(2026, 4, 21), 60, LessonStatus.CANCELLED)

        response = client.get(f"{BASE}/summary", params={"month": "2026-04-15"}, headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["month"] == "2026-04-01"
        assert body["partial"] is False
        assert body["totals"]["completed_count"] == 1
        assert body["totals"]["cancelled_count"] == 1
        assert body["totals"]["billable_amount"] == 70.0
        assert body["families"][0]["parent_name"] == parent.name


class TestTutorHeader:
    def test_missing_header(self, client):
        response = client.get(f"{BASE}/payments")
        assert response.status_code == 422

    def test_malformed_header(self, client):
        response = client.get(f"{BASE}/payments", headers={"X-Tutor-Id": "x" * 27})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TUTOR_ID"
