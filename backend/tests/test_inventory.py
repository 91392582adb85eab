"""
Stock ledger tests: receive with pack normalization, write-off and adjust.
"""

import pytest

from shoppos.errors import InsufficientStockError, ValidationError
from shoppos.models import Category, Product, StockMovement
from shoppos.services import inventory_service


@pytest.fixture
def sausages(db_session):
    category = Category(name="Sausages")
    db_session.add(category)
    db_session.flush()
    p = Product(sku="SAU-PACK", name="Sausage", category_id=category.id, price_cents=90, stock=0)
    db_session.add(p)
    db_session.commit()
    return p


class TestReceive:

    def test_category_pack_size_multiplies_quantity(self, sausages, admin_user, db_session):
        product = inventory_service.receive_stock(
            sausages.id, 2, user_id=admin_user.id, unit_cost_cents=1200
        )

        assert product.stock == 24
        assert product.cost_price_cents == 100

        movement = db_session.query(StockMovement).filter_by(product_id=sausages.id).one()
        assert movement.type == "IN"
        assert movement.quantity == 24
        assert movement.unit_cost_cents == 100

    def test_explicit_pack_size_wins_over_category(self, sausages, admin_user):
        product = inventory_service.receive_stock(
            sausages.id, 3, user_id=admin_user.id, unit_cost_cents=1000, pack_size=5
        )

        assert product.stock == 15
        assert product.pack_size == 5
        assert product.cost_price_cents == 200

    def test_per_unit_cost_rounds_half_up(self, db_session, admin_user):
        p = Product(sku="EGG", name="Eggs", price_cents=30, pack_size=4, stock=0)
        db_session.add(p)
        db_session.commit()

        product = inventory_service.receive_stock(p.id, 1, user_id=admin_user.id, unit_cost_cents=10)

        # 10 / 4 = 2.5
        assert product.cost_price_cents == 3

    def test_receive_can_update_sale_price(self, product, admin_user):
        updated = inventory_service.receive_stock(
            product.id, 1, user_id=admin_user.id, sale_price_cents=175
        )
        assert updated.price_cents == 175

    def test_composite_cannot_be_received(self, hot_dog, admin_user):
        with pytest.raises(ValidationError):
            inventory_service.receive_stock(hot_dog.id, 1, user_id=admin_user.id)

    def test_staff_cannot_receive(self, client, product, staff_headers):
        resp = client.post(
            "/api/stock/in", json={"product_id": product.id, "quantity": 1}, headers=staff_headers
        )
        assert resp.status_code == 403


class TestIssueAndAdjust:

    def test_issue_rejects_going_negative(self, client, product, admin_user, admin_headers, db_session):
        inventory_service.receive_stock(product.id, 3, user_id=admin_user.id)

        resp = client.post(
            "/api/stock/out", json={"product_id": product.id, "quantity": 4}, headers=admin_headers
        )

        assert resp.status_code == 422
        assert resp.json["details"] == {
            "product_id": product.id,
            "name": "Cola 0.33",
            "required": 4,
            "available": 3,
        }
        assert db_session.get(Product, product.id).stock == 3

    def test_issue_writes_out_movement(self, product, admin_user, db_session):
        inventory_service.receive_stock(product.id, 3, user_id=admin_user.id)
        inventory_service.issue_stock(product.id, 2, user_id=admin_user.id, note="broken")

        out = db_session.query(StockMovement).filter_by(type="OUT").one()
        assert out.quantity == 2
        assert out.note == "broken"
        assert db_session.get(Product, product.id).stock == 1

    def test_issue_service_raises(self, product, admin_user):
        with pytest.raises(InsufficientStockError):
            inventory_service.issue_stock(product.id, 1, user_id=admin_user.id)

    def test_adjust_records_signed_delta(self, product, admin_user, db_session):
        inventory_service.receive_stock(product.id, 10, user_id=admin_user.id)

        inventory_service.adjust_stock(product.id, 7, user_id=admin_user.id, note="count")

        adjust = db_session.query(StockMovement).filter_by(type="ADJUST").one()
        assert adjust.quantity == -3
        assert db_session.get(Product, product.id).stock == 7

    def test_ledger_balance_matches_stock(self, product, admin_user, staff_user, db_session):
        from shoppos.services import sales_service

        inventory_service.receive_stock(product.id, 10, user_id=admin_user.id)
        inventory_service.issue_stock(product.id, 1, user_id=admin_user.id)
        inventory_service.adjust_stock(product.id, 12, user_id=admin_user.id)
        sales_service.create_sale(
            [{"product_id": product.id, "quantity": 2, "unit_price_cents": None}],
            payment_method="cash",
            user_id=staff_user.id,
        )

        assert inventory_service.ledger_balance(product.id) == 10
        assert db_session.get(Product, product.id).stock == 10

    def test_staff_cannot_adjust(self, client, product, staff_headers):
        resp = client.post(
            "/api/stock/adjust", json={"product_id": product.id, "new_stock": 5}, headers=staff_headers
        )
        assert resp.status_code == 403

    def test_movements_filter_by_type(self, client, product, admin_user, admin_headers):
        inventory_service.receive_stock(product.id, 5, user_id=admin_user.id)
        inventory_service.issue_stock(product.id, 1, user_id=admin_user.id)

        resp = client.get("/api/stock/movements?type=OUT", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["total"] == 1
        assert resp.json["items"][0]["type"] == "OUT"
