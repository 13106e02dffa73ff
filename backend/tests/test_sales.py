# Overview: Pytest coverage for sales, sale groups, returns and stock consistency.

"""
Sales tests.

Verifies:
- total_amount == quantity_sold * sale_price after create and update
- Stock never goes negative; a rejected sale leaves stock untouched
- Quantity edits move stock by the delta
- Returns restore stock once, and only while the item exists
- Multi-item sales are all-or-nothing
- Grouped retrieval by day and by range
"""

from datetime import date
from decimal import Decimal

import pytest

from itemtracker.models import Item, ItemHistory, Sale, SaleGroup, SaleStatus
from itemtracker.services import sales_service, items_service
from itemtracker.services.sales_service import InsufficientStockError, SaleError
from itemtracker.validation import NotFoundError


def _qty(db_session, item_id):
    return db_session.get(Item, item_id).quantity


# =============================================================================
# SINGLE SALE
# =============================================================================


class TestCreateSale:

    def test_sell_then_grow_quantity(self, client, headers_a, db_session, user_a, make_item):
        """Sell 3 of 5 at 12, then edit the sale to 4: stock follows the delta."""
        item = make_item(user_a, name="A", quantity=5, price="10.00")

        resp = client.post(
            "/api/sales",
            json={"item_id": item.id, "quantity_sold": 3, "sale_price": 12},
            headers=headers_a,
        )
        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total_amount"] == 36.0
        assert sale["currency"] == "USD"
        assert sale["status"] == "active"
        assert sale["sale_group_id"] is not None
        assert _qty(db_session, item.id) == 2

        resp = client.put(f"/api/sales/{sale['id']}", json={"quantity_sold": 4}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["sale"]["total_amount"] == 48.0
        assert _qty(db_session, item.id) == 1

    def test_insufficient_stock_leaves_stock_unchanged(self, client, headers_a, db_session, user_a, make_item):
        item = make_item(user_a, quantity=2)
        resp = client.post(
            "/api/sales",
            json={"item_id": item.id, "quantity_sold": 3, "sale_price": 1},
            headers=headers_a,
        )
        assert resp.status_code == 400
        assert resp.json["details"]["available"] == 2
        assert resp.json["details"]["requested"] == 3
        assert _qty(db_session, item.id) == 2
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleGroup).count() == 0

    def test_only_in_stock_items_can_be_sold(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5, category="on_the_way")
        with pytest.raises(SaleError):
            sales_service.create_sale(
                user_id=user_a.id, item_id=item.id, quantity_sold=1, sale_price=Decimal("1.00")
            )

    def test_other_users_item_is_not_found(self, client, headers_b, user_a, make_item):
        item = make_item(user_a, quantity=5)
        resp = client.post(
            "/api/sales",
            json={"item_id": item.id, "quantity_sold": 1, "sale_price": 1},
            headers=headers_b,
        )
        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "payload",
        [
            {"quantity_sold": 1, "sale_price": 1},
            {"item_id": 1, "quantity_sold": 0, "sale_price": 1},
            {"item_id": 1, "quantity_sold": 1, "sale_price": -1},
            {"item_id": 1, "quantity_sold": 1, "sale_price": "1e30"},
            {"item_id": 1, "quantity_sold": 1},
            {"item_id": 1, "quantity_sold": 1, "sale_price": 1, "sale_date": "2024/01/01"},
            {"item_id": 1, "quantity_sold": 1, "sale_price": 1, "total_amount": 5},
        ],
    )
    def test_invalid_payload_returns_400(self, client, headers_a, payload):
        resp = client.post("/api/sales", json=payload, headers=headers_a)
        assert resp.status_code == 400

    def test_sale_records_history(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=2, sale_price=Decimal("3.00")
        )
        row = db_session.query(ItemHistory).filter_by(item_id=item.id).one()
        assert (row.quantity_before, row.quantity_after) == (5, 3)


# =============================================================================
# MULTI-ITEM SALE
# =============================================================================


class TestMultiItemSale:

    def test_two_lines_one_group(self, client, headers_a, db_session, user_a, make_item):
        a = make_item(user_a, name="A", quantity=5)
        b = make_item(user_a, name="B", quantity=3, currency="GEL")

        resp = client.post(
            "/api/sales/multi",
            json={
                "items": [
                    {"item_id": a.id, "quantity_sold": 2, "sale_price": 5},
                    {"item_id": b.id, "quantity_sold": 1, "sale_price": 20, "notes": "gift wrap"},
                ],
                "buyer_name": "Nino",
                "buyer_phone": "555-0101",
                "notes": "paid cash",
                "sale_date": "2026-03-14",
            },
            headers=headers_a,
        )
        assert resp.status_code == 201
        group = resp.json["saleGroup"]
        assert group["buyer_name"] == "Nino"
        assert group["sale_date"] == "2026-03-14"
        lines = group["items"]
        assert [l["total_amount"] for l in lines] == [10.0, 20.0]
        assert [l["currency"] for l in lines] == ["USD", "GEL"]
        assert lines[0]["notes"] == "paid cash"
        assert lines[1]["notes"] == "gift wrap"
        assert all(l["buyer_name"] == "Nino" for l in lines)

        assert db_session.query(SaleGroup).count() == 1
        assert db_session.query(Sale).count() == 2
        assert _qty(db_session, a.id) == 3
        assert _qty(db_session, b.id) == 2

    def test_one_bad_line_writes_nothing(self, db_session, user_a, make_item):
        a = make_item(user_a, name="A", quantity=5)
        b = make_item(user_a, name="B", quantity=1)

        with pytest.raises(InsufficientStockError):
            sales_service.create_multi_item_sale(
                user_id=user_a.id,
                lines=[
                    {"item_id": a.id, "quantity_sold": 2, "sale_price": Decimal("5")},
                    {"item_id": b.id, "quantity_sold": 2, "sale_price": Decimal("5")},
                ],
            )

        assert _qty(db_session, a.id) == 5
        assert _qty(db_session, b.id) == 1
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleGroup).count() == 0

    def test_repeated_item_checked_against_summed_quantity(self, db_session, user_a, make_item):
        a = make_item(user_a, name="A", quantity=3)
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_multi_item_sale(
                user_id=user_a.id,
                lines=[
                    {"item_id": a.id, "quantity_sold": 2, "sale_price": Decimal("1")},
                    {"item_id": a.id, "quantity_sold": 2, "sale_price": Decimal("1")},
                ],
            )
        assert exc.value.details["requested"] == 4
        assert _qty(db_session, a.id) == 3

    def test_empty_items_rejected(self, client, headers_a):
        resp = client.post("/api/sales/multi", json={"items": []}, headers=headers_a)
        assert resp.status_code == 400

    def test_oversized_line_price_rejected(self, client, headers_a, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        resp = client.post(
            "/api/sales/multi",
            json={"items": [{"item_id": item.id, "quantity_sold": 1, "sale_price": "1e30"}]},
            headers=headers_a,
        )
        assert resp.status_code == 400
        assert _qty(db_session, item.id) == 5


# =============================================================================
# UPDATE / RETURN / DELETE
# =============================================================================


class TestUpdateSale:

    def test_shrinking_quantity_gives_stock_back(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=3, sale_price=Decimal("2.50")
        )
        sales_service.update_sale(sale_id=sale.id, user_id=user_a.id, patch={"quantity_sold": 1})
        assert _qty(db_session, item.id) == 4
        assert db_session.get(Sale, sale.id).total_amount == Decimal("2.50")

    def test_growth_beyond_stock_rejected(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=3, sale_price=Decimal("12")
        )
        with pytest.raises(InsufficientStockError):
            sales_service.update_sale(sale_id=sale.id, user_id=user_a.id, patch={"quantity_sold": 6})
        assert _qty(db_session, item.id) == 2
        assert db_session.get(Sale, sale.id).quantity_sold == 3

    def test_price_change_recomputes_total(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=3, sale_price=Decimal("12")
        )
        updated = sales_service.update_sale(
            sale_id=sale.id, user_id=user_a.id, patch={"sale_price": Decimal("9.99")}
        )
        assert updated.total_amount == Decimal("29.97")
        assert _qty(db_session, item.id) == 2

    def test_oversized_price_edit_rejected(self, client, headers_a, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=1, sale_price=Decimal("4")
        )
        resp = client.put(f"/api/sales/{sale.id}", json={"sale_price": 1e30}, headers=headers_a)
        assert resp.status_code == 400
        assert client.get(f"/api/sales/{sale.id}", headers=headers_a).json["sale"]["total_amount"] == 4.0

    def test_quantity_change_after_item_deleted_is_not_found(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=1, sale_price=Decimal("1")
        )
        sale_id = sale.id
        items_service.delete_item(item_id=item.id, user_id=user_a.id)

        with pytest.raises(NotFoundError):
            sales_service.update_sale(sale_id=sale_id, user_id=user_a.id, patch={"quantity_sold": 2})

        # Non-quantity edits still work
        updated = sales_service.update_sale(
            sale_id=sale_id, user_id=user_a.id, patch={"buyer_name": "Giorgi"}
        )
        assert updated.buyer_name == "Giorgi"


class TestReturnSale:

    def test_return_with_restock(self, client, headers_a, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=3, sale_price=Decimal("1")
        )

        resp = client.post(f"/api/sales/{sale.id}/return", json={"add_to_stock": True}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["sale"]["status"] == "returned"
        assert resp.json["sale"]["returned_at"] is not None
        assert resp.json["stockRestored"] is True
        assert _qty(db_session, item.id) == 5

        again = client.post(f"/api/sales/{sale.id}/return", json={"add_to_stock": True}, headers=headers_a)
        assert again.status_code == 400
        assert _qty(db_session, item.id) == 5

    def test_return_without_restock(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=3, sale_price=Decimal("1")
        )
        returned, restored = sales_service.return_sale(
            sale_id=sale.id, user_id=user_a.id, add_to_stock=False
        )
        assert returned.status == SaleStatus.RETURNED
        assert restored is False
        assert _qty(db_session, item.id) == 2

    def test_restock_skipped_when_item_deleted(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=3, sale_price=Decimal("1")
        )
        sale_id = sale.id
        items_service.delete_item(item_id=item.id, user_id=user_a.id)

        returned, restored = sales_service.return_sale(
            sale_id=sale_id, user_id=user_a.id, add_to_stock=True
        )
        assert returned.status == SaleStatus.RETURNED
        assert restored is False

    def test_returned_sale_quantity_is_frozen(self, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=3, sale_price=Decimal("1")
        )
        sales_service.return_sale(sale_id=sale.id, user_id=user_a.id, add_to_stock=False)
        with pytest.raises(SaleError):
            sales_service.update_sale(sale_id=sale.id, user_id=user_a.id, patch={"quantity_sold": 1})

    def test_add_to_stock_must_be_boolean(self, client, headers_a, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=1, sale_price=Decimal("1")
        )
        resp = client.post(f"/api/sales/{sale.id}/return", json={"add_to_stock": "yes"}, headers=headers_a)
        assert resp.status_code == 400


class TestDeleteSale:

    def test_delete_line_does_not_touch_stock(self, client, headers_a, db_session, user_a, make_item):
        item = make_item(user_a, quantity=5)
        sale = sales_service.create_sale(
            user_id=user_a.id, item_id=item.id, quantity_sold=2, sale_price=Decimal("1")
        )
        resp = client.delete(f"/api/sales/{sale.id}", headers=headers_a)
        assert resp.status_code == 200
        assert _qty(db_session, item.id) == 3
        assert db_session.query(Sale).count() == 0

    def test_delete_group_removes_lines(self, client, headers_a, db_session, user_a, make_item):
        a = make_item(user_a, name="A", quantity=5)
        b = make_item(user_a, name="B", quantity=5)
        group = sales_service.create_multi_item_sale(
            user_id=user_a.id,
            lines=[
                {"item_id": a.id, "quantity_sold": 1, "sale_price": Decimal("1")},
                {"item_id": b.id, "quantity_sold": 1, "sale_price": Decimal("1")},
            ],
        )
        resp = client.delete(f"/api/sales/groups/{group.id}", headers=headers_a)
        assert resp.status_code == 200
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleGroup).count() == 0
        assert _qty(db_session, a.id) == 4

    def test_update_group_mirrors_buyer_on_lines(self, client, headers_a, db_session, user_a, make_item):
        a = make_item(user_a, name="A", quantity=5)
        group = sales_service.create_multi_item_sale(
            user_id=user_a.id,
            lines=[{"item_id": a.id, "quantity_sold": 1, "sale_price": Decimal("1")}],
        )
        resp = client.put(
            f"/api/sales/groups/{group.id}",
            json={"buyer_name": "Ana", "sale_date": "2026-01-02"},
            headers=headers_a,
        )
        assert resp.status_code == 200
        line = resp.json["saleGroup"]["items"][0]
        assert line["buyer_name"] == "Ana"
        assert line["sale_date"] == "2026-01-02"


# =============================================================================
# GROUPED RETRIEVAL
# =============================================================================


class TestGroupedRetrieval:

    def test_by_date(self, client, headers_a, user_a, make_item):
        a = make_item(user_a, name="A", quantity=5, purchase_price="4.00")
        sales_service.create_sale(
            user_id=user_a.id, item_id=a.id, quantity_sold=1, sale_price=Decimal("9"),
            sale_date=date(2026, 5, 1),
        )
        resp = client.get("/api/sales?date=2026-05-01", headers=headers_a)
        assert resp.status_code == 200
        groups = resp.json["sales"]
        assert len(groups) == 1
        assert groups[0]["items"][0]["purchase_price"] == 4.0

        assert client.get("/api/sales?date=2026-5-1", headers=headers_a).status_code == 400

    def test_range_drops_empty_groups(self, client, headers_a, user_a, make_item):
        a = make_item(user_a, name="A", quantity=5)
        kept = sales_service.create_sale(
            user_id=user_a.id, item_id=a.id, quantity_sold=1, sale_price=Decimal("9"),
            sale_date=date(2026, 5, 1),
        )
        emptied = sales_service.create_sale(
            user_id=user_a.id, item_id=a.id, quantity_sold=1, sale_price=Decimal("9"),
            sale_date=date(2026, 5, 2),
        )
        kept_group = kept.sale_group_id
        sales_service.delete_sale(sale_id=emptied.id, user_id=user_a.id)

        resp = client.get("/api/sales/range?startDate=2026-05-01&endDate=2026-05-31", headers=headers_a)
        assert resp.status_code == 200
        assert [g["group_id"] for g in resp.json["sales"]] == [kept_group]

    @pytest.mark.parametrize(
        "query",
        [
            "startDate=2026-05-01",
            "startDate=2026-05-10&endDate=2026-05-01",
            "startDate=05/01/2026&endDate=2026-05-31",
        ],
    )
    def test_range_rejects_bad_dates(self, client, headers_a, query):
        resp = client.get(f"/api/sales/range?{query}", headers=headers_a)
        assert resp.status_code == 400
