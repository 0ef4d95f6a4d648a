"""Tests for the catalog response cache."""

from cache import ResponseCache
from conftest import auth_headers


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = Clock()
    cache = ResponseCache({"/api/products": 10}, clock=clock)
    cache.set("/api/products", b"[]")

    clock.now = 9.9
    assert cache.get("/api/products", 10) == b"[]"
    clock.now = 10
    assert cache.get("/api/products", 10) is None


def test_prefix_matching():
    cache = ResponseCache({"/api/products": 600, "/api/categories": 900})
    assert cache.ttl_for("/api/products") == 600
    assert cache.ttl_for("/api/products/id/1") == 600
    assert cache.ttl_for("/api/categories/books") == 900
    assert cache.ttl_for("/api/productsx") == 0
    assert cache.ttl_for("/api/cart") == 0


def test_invalidate_only_touches_prefix():
    cache = ResponseCache({"/api/products": 600, "/api/categories": 900})
    cache.set("/api/products?page=2", b"a")
    cache.set("/api/products/id/1", b"b")
    cache.set("/api/categories", b"c")

    cache.invalidate("/api/products")
    assert cache.get("/api/products?page=2", 600) is None
    assert cache.get("/api/products/id/1", 600) is None
    assert cache.get("/api/categories", 900) == b"c"


def test_middleware_serves_hits_and_drops_on_write(client, db, admin, category, product):
    first = client.get("/api/products")
    assert first.headers["X-Cache"] == "MISS"

    db["product"].delete_one({"_id": product["_id"]})
    second = client.get("/api/products")
    assert second.headers["X-Cache"] == "HIT"
    assert second.json() == first.json()

    client.post(
        "/api/products", json={"name": "Fresh", "price": 5, "category": str(category["_id"])}, headers=auth_headers(admin)
    )
    third = client.get("/api/products")
    assert third.headers["X-Cache"] == "MISS"
    assert [p["name"] for p in third.json()["products"]] == ["Fresh"]


def test_errors_are_not_cached(client):
    assert client.get("/api/products/missing-slug").status_code == 404
    assert "X-Cache" not in client.get("/api/products/missing-slug").headers


def test_uncached_routes_pass_through(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert "X-Cache" not in response.headers


def test_expired_entries_are_swept_on_store():
    clock = Clock()
    cache = ResponseCache({"/api/products": 10}, clock=clock)
    for i in range(500):
        cache.set(f"/api/products?search={i}", b"[]")
    assert len(cache) == 500

    clock.now = 11
    cache.set("/api/products?search=fresh", b"[]")
    assert len(cache) == 1
    assert cache.get("/api/products?search=fresh", 10) == b"[]"


def test_size_is_capped_oldest_first():
    clock = Clock()
    cache = ResponseCache({"/api/products": 600}, clock=clock, max_entries=3)
    for i in range(5):
        clock.now = i
        cache.set(f"/api/products?page={i}", str(i).encode())

    assert len(cache) == 3
    assert cache.get("/api/products?page=0", 600) is None
    assert cache.get("/api/products?page=1", 600) is None
    assert cache.get("/api/products?page=4", 600) == b"4"
