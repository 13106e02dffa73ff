# Overview: Pytest coverage for the item name registry and bulk rename.

from itemtracker.models import Item, ItemName
from itemtracker.services import item_names_service


class TestItemNames:

    def test_list_alphabetical(self, client, headers_a, db_session, user_a):
        for name in ("Zipper", "anchor", "Bolt"):
            item_names_service.add_name(user_a.id, name)
        db_session.commit()

        resp = client.get("/api/item-names", headers=headers_a)
        assert resp.status_code == 200
        assert [n["name"] for n in resp.json["names"]] == ["Bolt", "Zipper", "anchor"]

    def test_add_name_dedupes_case_insensitively(self, db_session, user_a):
        first = item_names_service.add_name(user_a.id, "Widget")
        second = item_names_service.add_name(user_a.id, "  WIDGET ")
        db_session.commit()
        assert first.id == second.id
        assert db_session.query(ItemName).filter_by(user_id=user_a.id).count() == 1

    def test_rename_cascades_to_items(self, client, headers_a, db_session, user_a, make_item):
        entry = item_names_service.add_name(user_a.id, "Widget")
        db_session.commit()
        a = make_item(user_a, name="Widget", category="in_stock")
        b = make_item(user_a, name="widget", category="on_the_way")
        other = make_item(user_a, name="Gizmo")

        resp = client.put(f"/api/item-names/{entry.id}", json={"name": "Sprocket"}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["itemsUpdated"] == 2
        assert resp.json["name"]["name"] == "Sprocket"

        assert db_session.get(Item, a.id).name == "Sprocket"
        assert db_session.get(Item, b.id).name == "Sprocket"
        assert db_session.get(Item, other.id).name == "Gizmo"

    def test_rename_does_not_touch_other_users(self, db_session, user_a, user_b, make_item):
        entry = item_names_service.add_name(user_a.id, "Widget")
        db_session.commit()
        theirs = make_item(user_b, name="Widget")

        item_names_service.rename(entry.id, user_a.id, "Sprocket")
        assert db_session.get(Item, theirs.id).name == "Widget"

    def test_rename_to_existing_name_conflicts(self, client, headers_a, db_session, user_a):
        entry = item_names_service.add_name(user_a.id, "Widget")
        item_names_service.add_name(user_a.id, "Gadget")
        db_session.commit()

        resp = client.put(f"/api/item-names/{entry.id}", json={"name": "gadget"}, headers=headers_a)
        assert resp.status_code == 409

    def test_rename_changing_only_case_is_allowed(self, client, headers_a, db_session, user_a):
        entry = item_names_service.add_name(user_a.id, "widget")
        db_session.commit()
        resp = client.put(f"/api/item-names/{entry.id}", json={"name": "Widget"}, headers=headers_a)
        assert resp.status_code == 200

    def test_delete(self, client, headers_a, db_session, user_a):
        entry = item_names_service.add_name(user_a.id, "Widget")
        db_session.commit()
        entry_id = entry.id
        assert client.delete(f"/api/item-names/{entry_id}", headers=headers_a).status_code == 200
        assert client.delete(f"/api/item-names/{entry_id}", headers=headers_a).status_code == 404
