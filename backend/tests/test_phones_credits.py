"""
Phone sub-ledger and credit installment tests.

Verifies:
- Intake rejects a duplicate IMEI with 409
- A phone sells exactly once
- Credit terms: monthly = (price - initial) / months, rounded half-up
- Installments can never push total paid above the sale total
"""

import pytest

from shoppos.errors import ConflictError, CreditError
from shoppos.models import Phone, PhoneMovement, Sale
from shoppos.services import credit_service, phone_service


def _intake(user, imei="356938035643809", purchase=600, sale_price=1000):
    return phone_service.intake_phone(
        {
            "imei": imei,
            "model": "Pixel 7",
            "purchase_price_cents": purchase,
            "condition": "used",
            "sale_price_cents": sale_price,
        },
        user_id=user.id,
    )


class TestPhoneIntake:

    def test_intake_writes_in_movement(self, client, admin_headers, db_session):
        resp = client.post(
            "/api/phones",
            json={
                "imei": "490154203237518",
                "model": "iPhone 12",
                "purchase_price_cents": 25000,
                "condition": "new",
            },
            headers=admin_headers,
        )

        assert resp.status_code == 201
        assert resp.json["phone"]["status"] == "in_stock"
        movement = db_session.query(PhoneMovement).one()
        assert movement.type == "IN"
        assert movement.purchase_price_cents == 25000

    def test_duplicate_imei_is_409(self, client, admin_user, admin_headers):
        _intake(admin_user, imei="111111111111111")

        resp = client.post(
            "/api/phones",
            json={
                "imei": "111111111111111",
                "model": "Other",
                "purchase_price_cents": 100,
                "condition": "new",
            },
            headers=admin_headers,
        )

        assert resp.status_code == 409

    def test_staff_cannot_intake(self, client, staff_headers):
        resp = client.post(
            "/api/phones",
            json={"imei": "1", "model": "x", "purchase_price_cents": 1, "condition": "new"},
            headers=staff_headers,
        )
        assert resp.status_code == 403


class TestPhoneSale:

    def test_cash_sale_marks_phone_sold(self, client, admin_user, staff_headers, db_session):
        phone = _intake(admin_user)

        resp = client.post(
            f"/api/phones/{phone.id}/sell",
            json={"payment_method": "cash"},
            headers=staff_headers,
        )

        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total_cents"] == 1000
        assert sale["phone_sale"]["purchase_price_cents"] == 600

        stored = db_session.get(Phone, phone.id)
        assert stored.status == "sold"
        assert stored.sale_price_cents == 1000
        types = sorted(m.type for m in stored.movements)
        assert types == ["IN", "SALE"]

    def test_second_sale_is_409(self, admin_user, staff_user, db_session):
        phone = _intake(admin_user)
        phone_service.sell_phone(phone.id, user_id=staff_user.id, payment_method="card")

        with pytest.raises(ConflictError):
            phone_service.sell_phone(phone.id, user_id=staff_user.id, payment_method="cash")

        assert db_session.query(Sale).count() == 1

    def test_price_required_without_suggested_price(self, client, admin_user, staff_headers):
        phone = _intake(admin_user, sale_price=None)

        resp = client.post(
            f"/api/phones/{phone.id}/sell", json={"payment_method": "cash"}, headers=staff_headers
        )

        assert resp.status_code == 422

    def test_credit_sale_computes_monthly_payment(self, admin_user, staff_user):
        phone = _intake(admin_user, sale_price=1000)

        sale = phone_service.sell_phone(
            phone.id,
            user_id=staff_user.id,
            payment_method="credit",
            customer_first_name="Dana",
            initial_payment_cents=100,
            credit_months=4,
        )

        # (1000 - 100) / 4 = 225
        assert sale.monthly_payment_cents == 225
        assert sale.initial_payment_cents == 100
        assert sale.credit_months == 4

    @pytest.mark.parametrize("overrides", [
        {"customer_first_name": None, "customer_last_name": None},
        {"initial_payment_cents": 1000},
        {"credit_months": 0},
    ])
    def test_credit_terms_validation(self, admin_user, staff_user, db_session, overrides):
        phone = _intake(admin_user, sale_price=1000)
        kwargs = {
            "customer_first_name": "Dana",
            "customer_last_name": "Reyes",
            "initial_payment_cents": 200,
            "credit_months": 8,
        }
        kwargs.update(overrides)

        with pytest.raises(CreditError):
            phone_service.sell_phone(
                phone.id, user_id=staff_user.id, payment_method="credit", **kwargs
            )

        assert db_session.get(Phone, phone.id).status == "in_stock"


class TestCreditPayments:

    @pytest.fixture
    def credit_sale(self, admin_user, staff_user):
        phone = _intake(admin_user, sale_price=1000)
        return phone_service.sell_phone(
            phone.id,
            user_id=staff_user.id,
            payment_method="credit",
            customer_first_name="Dana",
            customer_last_name="Reyes",
            initial_payment_cents=200,
            credit_months=8,
        )

    def test_overpayment_rejected_and_exact_payment_closes(self, client, credit_sale, staff_headers):
        resp = client.post(
            "/api/credits/payment",
            json={"sale_id": credit_sale.id, "amount_cents": 700},
            headers=staff_headers,
        )
        assert resp.status_code == 201

        resp = client.post(
            "/api/credits/payment",
            json={"sale_id": credit_sale.id, "amount_cents": 150},
            headers=staff_headers,
        )
        assert resp.status_code == 422
        assert resp.json["details"]["remaining_cents"] == 100

        resp = client.post(
            "/api/credits/payment",
            json={"sale_id": credit_sale.id, "amount_cents": 100},
            headers=staff_headers,
        )
        assert resp.status_code == 201

        credit = client.get(f"/api/credits/{credit_sale.id}", headers=staff_headers).json["credit"]
        assert credit["total_paid_cents"] == 1000
        assert credit["remaining_cents"] == 0
        assert credit["is_paid_off"] is True
        assert len(credit["payments"]) == 2

    def test_open_filter_hides_paid_off(self, client, credit_sale, staff_user, staff_headers):
        resp = client.get("/api/credits?open=true", headers=staff_headers)
        assert [c["sale_id"] for c in resp.json["items"]] == [credit_sale.id]

        credit_service.record_payment(credit_sale.id, 800, user_id=staff_user.id)

        resp = client.get("/api/credits?open=true", headers=staff_headers)
        assert resp.json["items"] == []
        resp = client.get("/api/credits", headers=staff_headers)
        assert len(resp.json["items"]) == 1

    def test_payment_on_cash_sale_rejected(self, admin_user, staff_user):
        phone = _intake(admin_user)
        sale = phone_service.sell_phone(phone.id, user_id=staff_user.id, payment_method="cash")

        with pytest.raises(CreditError):
            credit_service.record_payment(sale.id, 100, user_id=staff_user.id)

    def test_payment_on_missing_sale_is_404(self, client, staff_headers):
        resp = client.post(
            "/api/credits/payment", json={"sale_id": 12345, "amount_cents": 100}, headers=staff_headers
        )
        assert resp.status_code == 404

    def test_zero_payment_rejected(self, client, credit_sale, staff_headers):
        resp = client.post(
            "/api/credits/payment",
            json={"sale_id": credit_sale.id, "amount_cents": 0},
            headers=staff_headers,
        )
        assert resp.status_code == 422
