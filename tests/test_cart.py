"""Tests for the embedded cart."""

import pytest
from bson import ObjectId

import cart
from conftest import auth_headers, make_product
from errors import NotFoundError, ValidationError


class TestCartService:
    def test_add_appends_then_increments(self, db, user, product):
        cart.add_item(db, user, str(product["_id"]), 1)
        cart.add_item(db, user, str(product["_id"]), 2)

        stored = db["user"].find_one({"_id": user["_id"]})["cart"]
        assert len(stored) == 1
        assert stored[0]["product_id"] == product["_id"]
        assert stored[0]["quantity"] == 3

    def test_add_unknown_product(self, db, user):
        with pytest.raises(NotFoundError):
            cart.add_item(db, user, str(ObjectId()), 1)

    def test_add_invalid_product_id(self, db, user):
        with pytest.raises(ValidationError):
            cart.add_item(db, user, "not-an-id", 1)

    def test_totals_for_non_empty_cart(self, db, user, category):
        p1 = make_product(db, category, name="Mouse", price=100)
        p2 = make_product(db, category, name="Keyboard", price=35.5)
        cart.add_item(db, user, str(p1["_id"]), 2)
        cart.add_item(db, user, str(p2["_id"]), 1)

        summary = cart.read_cart(db, user["_id"])
        assert summary["subtotal"] == 235.5
        assert summary["delivery"] == 50
        assert summary["total"] == summary["subtotal"] + summary["delivery"]
        assert summary["item_count"] == 2

    def test_empty_cart_has_no_delivery_fee(self, db, user):
        summary = cart.read_cart(db, user["_id"])
        assert summary == {"items": [], "subtotal": 0, "delivery": 0, "total": 0, "item_count": 0}

    def test_read_prunes_deleted_products(self, db, user, category):
        keep = make_product(db, category, name="Lamp", price=20)
        gone = make_product(db, category, name="Vase", price=30)
        cart.add_item(db, user, str(keep["_id"]), 1)
        cart.add_item(db, user, str(gone["_id"]), 1)
        db["product"].delete_one({"_id": gone["_id"]})

        summary = cart.read_cart(db, user["_id"])
        assert [line["product"]["_id"] for line in summary["items"]] == [keep["_id"]]
        assert summary["subtotal"] == 20

        stored = db["user"].find_one({"_id": user["_id"]})["cart"]
        assert [item["product_id"] for item in stored] == [keep["_id"]]

    def test_remove_also_purges_dangling_entries(self, db, user, category):
        a = make_product(db, category, name="A", price=1)
        b = make_product(db, category, name="B", price=1)
        c = make_product(db, category, name="C", price=1)
        for p in (a, b, c):
            cart.add_item(db, user, str(p["_id"]), 1)
        db["product"].delete_one({"_id": c["_id"]})

        removed = cart.remove_item(db, user, str(a["_id"]))
        assert removed == 2
        stored = db["user"].find_one({"_id": user["_id"]})["cart"]
        assert [item["product_id"] for item in stored] == [b["_id"]]

    def test_set_quantity(self, db, user, product):
        cart.add_item(db, user, str(product["_id"]), 1)
        assert cart.set_quantity(db, user, str(product["_id"]), 5) == 5
        assert db["user"].find_one({"_id": user["_id"]})["cart"][0]["quantity"] == 5

    def test_set_quantity_below_one(self, db, user, product):
        cart.add_item(db, user, str(product["_id"]), 1)
        with pytest.raises(ValidationError):
            cart.set_quantity(db, user, str(product["_id"]), 0)

    def test_set_quantity_missing_item(self, db, user, product):
        with pytest.raises(NotFoundError):
            cart.set_quantity(db, user, str(product["_id"]), 2)


class TestCartApi:
    def test_requires_auth(self, client):
        response = client.get("/api/cart")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_add_and_read(self, client, user, product):
        headers = auth_headers(user)
        response = client.post("/api/cart", json={"product_id": str(product["_id"]), "quantity": 2}, headers=headers)
        assert response.status_code == 200

        data = client.get("/api/cart", headers=headers).json()
        assert data["success"] is True
        assert data["subtotal"] == 200
        assert data["delivery"] == 50
        assert data["total"] == 250
        assert data["items"][0]["product"]["id"] == str(product["_id"])

    def test_add_rejects_zero_quantity(self, client, user, product):
        response = client.post(
            "/api/cart/add", json={"product_id": str(product["_id"]), "quantity": 0}, headers=auth_headers(user)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid input"

    def test_update_and_remove(self, client, user, product):
        headers = auth_headers(user)
        client.post("/api/cart", json={"product_id": str(product["_id"]), "quantity": 1}, headers=headers)

        response = client.post(f"/api/cart/update/{product['_id']}", json={"quantity": 4}, headers=headers)
        assert response.json()["new_quantity"] == 4

        response = client.delete(f"/api/cart/remove/{product['_id']}", headers=headers)
        assert response.json()["removed_count"] == 1
        assert client.get("/api/cart", headers=headers).json()["total"] == 0

    def test_update_missing_item(self, client, user, product):
        response = client.post(f"/api/cart/update/{product['_id']}", json={"quantity": 2}, headers=auth_headers(user))
        assert response.status_code == 404
        assert response.json()["message"] == "Item not found in cart"
