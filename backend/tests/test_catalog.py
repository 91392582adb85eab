"""
Catalog tests: categories, products and composite wiring.
"""

import pytest

from shoppos.errors import ConfigurationError, ValidationError
from shoppos.models import Category, Product
from shoppos.services import catalog_service


class TestCategories:

    def test_duplicate_name_is_409_case_insensitive(self, client, admin_headers):
        resp = client.post("/api/categories", json={"name": "Drinks"}, headers=admin_headers)
        assert resp.status_code == 201

        resp = client.post("/api/categories", json={"name": "drinks "}, headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_blocked_while_products_reference_it(self, client, admin_headers, db_session):
        category = Category(name="Snacks")
        db_session.add(category)
        db_session.flush()
        db_session.add(Product(sku="CHIPS", name="Chips", category_id=category.id, price_cents=100))
        db_session.commit()

        resp = client.delete(f"/api/categories/{category.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert db_session.get(Category, category.id) is not None

    def test_delete_unused_category(self, client, admin_headers, db_session):
        category = Category(name="Empty")
        db_session.add(category)
        db_session.commit()

        resp = client.delete(f"/api/categories/{category.id}", headers=admin_headers)
        assert resp.status_code == 204

    def test_staff_can_list_but_not_create(self, client, staff_headers):
        assert client.get("/api/categories", headers=staff_headers).status_code == 200
        resp = client.post("/api/categories", json={"name": "X"}, headers=staff_headers)
        assert resp.status_code == 403


class TestProducts:

    def test_create_generates_sku(self, client, admin_headers):
        resp = client.post(
            "/api/products", json={"name": "Green Tea", "price_cents": 250}, headers=admin_headers
        )

        assert resp.status_code == 201
        product = resp.json["product"]
        assert product["sku"]
        assert product["stock"] == 0
        assert product["pack_size"] == 1

    def test_stock_is_not_writable(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Water", "price_cents": 100, "stock": 50},
            headers=admin_headers,
        )
        assert resp.status_code == 422

    def test_duplicate_sku_is_409(self, client, admin_headers, product):
        resp = client.post(
            "/api/products",
            json={"sku": "COLA-330", "name": "Other", "price_cents": 100},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_negative_price_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/products", json={"name": "Bad", "price_cents": -1}, headers=admin_headers
        )
        assert resp.status_code == 422

    def test_search_by_name(self, client, staff_headers, product):
        resp = client.get("/api/products?search=cola", headers=staff_headers)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["items"]] == [product.id]

    def test_delete_product_with_movements_is_409(self, client, admin_headers, product, admin_user):
        from shoppos.services import inventory_service

        inventory_service.receive_stock(product.id, 1, user_id=admin_user.id)

        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 409


class TestComposite:

    def test_composite_needs_both_components(self, product):
        with pytest.raises(ValidationError):
            catalog_service.create_product({
                "name": "Half dog",
                "price_cents": 300,
                "is_composite": True,
                "bun_component_id": product.id,
            })

    def test_component_cannot_be_composite(self, hot_dog):
        with pytest.raises(ValidationError):
            catalog_service.create_product({
                "name": "Double dog",
                "price_cents": 500,
                "is_composite": True,
                "bun_component_id": hot_dog.id,
                "sausage_component_id": hot_dog.sausage_component_id,
            })

    def test_product_with_stock_cannot_become_composite(self, hot_dog, db_session):
        bun_id = hot_dog.bun_component_id
        sausage_id = hot_dog.sausage_component_id
        with pytest.raises(ValidationError):
            catalog_service.update_product(bun_id, {
                "is_composite": True,
                "bun_component_id": sausage_id,
                "sausage_component_id": sausage_id,
            })
        assert db_session.get(Product, bun_id).is_composite is False

    def test_resolve_composite(self, hot_dog):
        parts = catalog_service.resolve_composite(hot_dog)

        assert parts.bun.id == hot_dog.bun_component_id
        assert parts.sausage.id == hot_dog.sausage_component_id
        assert catalog_service.required_component_quantities(parts, 3) == (3, 6)

    def test_resolve_composite_without_mapping_fails(self, db_session):
        broken = Product(sku="BROKEN", name="Broken", price_cents=1, is_composite=True)
        db_session.add(broken)
        db_session.commit()

        with pytest.raises(ConfigurationError):
            catalog_service.resolve_composite(broken)

    def test_turning_composite_off_clears_components(self, hot_dog):
        updated = catalog_service.update_product(hot_dog.id, {"is_composite": False})

        assert updated.bun_component_id is None
        assert updated.sausage_component_id is None
        assert updated.sausages_per_unit is None
