"""
Reporting tests: bucket keys, summary reconciliation, top products,
monthly report text and exports.
"""

import io
from datetime import datetime

import pytest
from openpyxl import load_workbook

from shoppos.models import Sale
from shoppos.services import (
    credit_service,
    inventory_service,
    phone_service,
    reporting_service,
    sales_service,
)
from shoppos.services.reporting_service import ReportError, bucket_key, chunk_lines


class TestBucketKey:

    @pytest.mark.parametrize("moment,bucket,expected", [
        (datetime(2024, 3, 5, 14, 0), "day", "2024-03-05"),
        (datetime(2024, 3, 5, 14, 0), "month", "2024-03"),
        (datetime(2024, 3, 5, 14, 0), "year", "2024"),
        # 2024-01-01 is a Monday; weeks roll over on Sunday
        (datetime(2024, 1, 1), "week", "2024-W01"),
        (datetime(2024, 1, 6), "week", "2024-W01"),
        (datetime(2024, 1, 7), "week", "2024-W02"),
        (datetime(2024, 12, 31), "week", "2024-W53"),
    ])
    def test_keys(self, moment, bucket, expected):
        assert bucket_key(moment, bucket) == expected

    def test_unknown_bucket(self):
        with pytest.raises(ReportError):
            bucket_key(datetime(2024, 1, 1), "quarter")


class TestSummary:

    def test_mixed_sales_reconcile(self, product, admin_user, staff_user):
        inventory_service.receive_stock(product.id, 10, user_id=admin_user.id, unit_cost_cents=100)
        sales_service.create_sale(
            [{"product_id": product.id, "quantity": 2, "unit_price_cents": None}],
            payment_method="cash",
            user_id=staff_user.id,
        )
        phone = phone_service.intake_phone(
            {"imei": "353918058381692", "model": "Galaxy S21", "purchase_price_cents": 600,
             "condition": "used", "sale_price_cents": 1000},
            user_id=admin_user.id,
        )
        credit = phone_service.sell_phone(
            phone.id,
            user_id=staff_user.id,
            payment_method="credit",
            customer_first_name="Dana",
            initial_payment_cents=200,
            credit_months=8,
        )
        credit_service.record_payment(credit.id, 300, user_id=staff_user.id)

        rows = reporting_service.summary(bucket="month")

        assert len(rows) == 1
        row = rows[0]
        assert row["revenue"] == 1300
        assert row["count"] == 2
        assert row["cash"] == 300
        assert row["card"] == 0
        assert row["credit"] == 1000
        assert row["cash"] + row["card"] + row["credit"] == row["revenue"]
        assert row["credit_unpaid"] == 500
        # items: (150 - 100) x 2; phone on credit: collected 500 - purchase 600
        assert row["profit"] == 0
        assert row["avg"] == 650.0

    def test_day_buckets_add_up_to_the_month(self, db_session, product, admin_user, staff_user):
        inventory_service.receive_stock(product.id, 20, user_id=admin_user.id, unit_cost_cents=100)
        cash = sales_service.create_sale(
            [{"product_id": product.id, "quantity": 2, "unit_price_cents": None}],
            payment_method="cash",
            user_id=staff_user.id,
        )
        discounted = sales_service.create_sale(
            [{"product_id": product.id, "quantity": 3, "unit_price_cents": None}],
            payment_method="card",
            user_id=staff_user.id,
            discount_cents=50,
        )
        phone = phone_service.intake_phone(
            {"imei": "353918058381692", "model": "Galaxy S21", "purchase_price_cents": 600,
             "condition": "used", "sale_price_cents": 1000},
            user_id=admin_user.id,
        )
        credit = phone_service.sell_phone(
            phone.id,
            user_id=staff_user.id,
            payment_method="credit",
            customer_first_name="Dana",
            initial_payment_cents=200,
            credit_months=8,
        )
        credit_service.record_payment(credit.id, 300, user_id=staff_user.id)
        next_month = sales_service.create_sale(
            [{"product_id": product.id, "quantity": 1, "unit_price_cents": None}],
            payment_method="cash",
            user_id=staff_user.id,
        )
        cash.created_at = datetime(2024, 3, 3, 10, 0)
        discounted.created_at = datetime(2024, 3, 10, 18, 30)
        credit.created_at = datetime(2024, 3, 17, 12, 0)
        next_month.created_at = datetime(2024, 4, 2, 9, 0)
        db_session.commit()

        days = [r for r in reporting_service.summary(bucket="day") if r["period"].startswith("2024-03")]
        month = next(r for r in reporting_service.summary(bucket="month") if r["period"] == "2024-03")
        march_totals = sum(s.total_cents for s in (cash, discounted, credit))

        assert [r["period"] for r in days] == ["2024-03-03", "2024-03-10", "2024-03-17"]
        assert sum(r["revenue"] for r in days) == month["revenue"] == march_totals == 1700
        # 2 x 50 + 3 x 50 on the items; credit phone: collected 500 - purchase 600
        assert sum(r["profit"] for r in days) == month["profit"] == 150
        assert sum(r["count"] for r in days) == month["count"] == 3

    def test_buckets_use_business_timezone(self, app, db_session, staff_user, monkeypatch):
        monkeypatch.setitem(app.config, "BUSINESS_TIMEZONE", "Asia/Tokyo")
        db_session.add(Sale(
            user_id=staff_user.id, total_cents=500, payment_method="cash",
            created_at=datetime(2024, 3, 10, 23, 30),
        ))
        db_session.commit()

        rows = reporting_service.summary(bucket="day")

        assert [r["period"] for r in rows] == ["2024-03-11"]

    def test_category_filter(self, product, hot_dog, staff_user):
        sales_service.create_sale(
            [{"product_id": hot_dog.id, "quantity": 2, "unit_price_cents": None}],
            payment_method="card",
            user_id=staff_user.id,
        )

        rows = reporting_service.summary(bucket="day", category_id=hot_dog.category_id)

        assert len(rows) == 1
        assert rows[0]["revenue"] == 600
        assert rows[0]["count"] == 1
        assert set(rows[0]) == {"period", "revenue", "count", "avg"}

    def test_summary_route_validates_bucket(self, client, staff_headers):
        resp = client.get("/api/reports/summary?bucket=quarter", headers=staff_headers)
        assert resp.status_code == 422

    def test_summary_route_validates_dates(self, client, staff_headers):
        resp = client.get("/api/reports/summary?from=yesterday", headers=staff_headers)
        assert resp.status_code == 422

    def test_summary_route_range(self, client, staff_headers, staff_user, db_session):
        for day in (1, 15, 28):
            db_session.add(Sale(
                user_id=staff_user.id, total_cents=100 * day, payment_method="cash",
                created_at=datetime(2024, 2, day, 12, 0),
            ))
        db_session.commit()

        resp = client.get(
            "/api/reports/summary?from=2024-02-10&to=2024-02-28&bucket=month", headers=staff_headers
        )

        assert resp.status_code == 200
        assert resp.json["items"] == [{
            "period": "2024-02",
            "revenue": 4300,
            "count": 2,
            "cash": 4300,
            "card": 0,
            "credit": 0,
            "profit": 0,
            "credit_unpaid": 0,
            "avg": 2150.0,
        }]


class TestTopProducts:

    def test_ranked_by_revenue(self, product, hot_dog, admin_user, staff_user):
        inventory_service.receive_stock(product.id, 10, user_id=admin_user.id, unit_cost_cents=100)
        sales_service.create_sale(
            [
                {"product_id": product.id, "quantity": 1, "unit_price_cents": None},
                {"product_id": hot_dog.id, "quantity": 1, "unit_price_cents": None},
            ],
            payment_method="cash",
            user_id=staff_user.id,
        )

        rows = reporting_service.top_products(limit=5)

        assert [r["product_id"] for r in rows] == [hot_dog.id, product.id]
        assert rows[0]["profit"] == 300
        assert rows[1]["profit"] == 50


class TestMonthlyReport:

    def test_report_covers_only_that_month(self, db_session, staff_user):
        db_session.add_all([
            Sale(user_id=staff_user.id, total_cents=1000, payment_method="cash",
                 created_at=datetime(2024, 4, 30, 23, 59)),
            Sale(user_id=staff_user.id, total_cents=2000, payment_method="card",
                 created_at=datetime(2024, 5, 1, 0, 0)),
            Sale(user_id=staff_user.id, total_cents=4000, payment_method="cash",
                 created_at=datetime(2024, 6, 1, 0, 0)),
        ])
        db_session.commit()

        report = reporting_service.build_monthly_report(2024, 5)

        assert report["count"] == 1
        assert report["revenue"] == 2000
        assert report["card"] == 2000

    def test_empty_month_text(self, db_session):
        chunks = reporting_service.format_monthly_report(reporting_service.build_monthly_report(2024, 1))
        assert chunks == ["Monthly report 2024-01\n\nNo sales in this period."]

    def test_chunks_split_on_line_boundaries(self):
        assert chunk_lines(["aaaaa", "bbbbb", "ccccc"], 11) == ["aaaaa\nbbbbb", "ccccc"]

    def test_previous_month_wraps_year(self):
        from datetime import date
        assert reporting_service.previous_month(date(2025, 1, 1)) == (2024, 12)


class TestExports:

    def test_sales_csv(self, client, staff_headers, product, admin_user, staff_user):
        inventory_service.receive_stock(product.id, 5, user_id=admin_user.id, unit_cost_cents=100)
        sale = sales_service.create_sale(
            [{"product_id": product.id, "quantity": 2, "unit_price_cents": None}],
            payment_method="cash",
            user_id=staff_user.id,
            discount_cents=50,
        )

        resp = client.get("/api/sales/export.csv", headers=staff_headers)

        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        lines = resp.data.decode("utf-8").strip().split("\n")
        assert lines[0].startswith("sale_id,created_at")
        fields = lines[1].split(",")
        assert fields[0] == str(sale.id)
        assert fields[4:] == ["300", "50", "250", "100"]

    def test_receipt_csv(self, client, staff_headers, product, admin_user, staff_user):
        inventory_service.receive_stock(product.id, 5, user_id=admin_user.id)
        sale = sales_service.create_sale(
            [{"product_id": product.id, "quantity": 3, "unit_price_cents": None}],
            payment_method="card",
            user_id=staff_user.id,
        )

        resp = client.get(f"/api/sales/{sale.id}/receipt.csv", headers=staff_headers)

        lines = resp.data.decode("utf-8").strip().split("\n")
        assert lines[1] == "Cola 0.33,3,150,450"
        assert lines[-1] == "total,,,450"

    def test_xlsx_export(self, client, staff_headers, product, admin_user, staff_user):
        inventory_service.receive_stock(product.id, 5, user_id=admin_user.id)
        sales_service.create_sale(
            [{"product_id": product.id, "quantity": 1, "unit_price_cents": None}],
            payment_method="cash",
            user_id=staff_user.id,
        )

        resp = client.get("/api/reports/export.xlsx", headers=staff_headers)

        assert resp.status_code == 200
        wb = load_workbook(io.BytesIO(resp.data))
        assert wb.sheetnames == ["Sales", "Items"]
        assert wb["Sales"].max_row == 2
        assert wb["Sales"]["G2"].value == 1.5

    def test_stock_csv(self, client, staff_headers, product):
        resp = client.get("/api/reports/stock-export.csv", headers=staff_headers)
        lines = resp.data.decode("utf-8").strip().split("\n")
        assert lines[1].startswith(f"{product.id},COLA-330,Cola 0.33,,0,1,150,100,1,0")
