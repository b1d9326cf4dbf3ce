import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import FakeCatalog, make_product
from main import app
from routers.drawer import get_catalog

catalog = FakeCatalog(
    products=[make_product(pid, price=1000) for pid in ("p1", "p2", "p3", "p4")],
    popular=["p1", "p2", "p3", "p4"],
)


async def fake_catalog():
    yield catalog


app.dependency_overrides[get_catalog] = fake_catalog
client = TestClient(app)


def test_healthz():
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_threshold_preview():
    resp = client.post("/api/drawer/thresholds", json={
        "shopId": "https://Demo.myshopify.com/",
        "subtotal": 4500,
        "settings": {"enableFreeShipping": True, "freeShippingThreshold": 50},
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["shop_id"] == "demo.myshopify.com"
    assert body["shipping"]["remaining"] == 500
    assert body["message"] == "You're $5.00 away from free shipping!"
    assert resp.headers["X-Request-Id"]


def test_threshold_preview_rejects_negative_subtotal():
    resp = client.post("/api/drawer/thresholds", json={"subtotal": -1})
    assert resp.status_code == 422


def test_recommendation_preview_excludes_cart_products():
    resp = client.post("/api/drawer/recommendations", json={
        "cart": {"items": [{"key": "k", "variant_id": "p1-v0", "product_id": "p1", "quantity": 1, "price": 1000}]},
        "settings": {"maxRecommendations": 2, "recommendationLayout": "grid"},
    })
    assert resp.status_code == 200
    body = resp.json()
    assert [c["product"]["id"] for c in body["visible"]] == ["p2", "p3"]
    assert body["view"]["layout"] == "grid"
    assert all(c["reason"] == "popularity_fallback" for c in body["master"])
