"""
Product catalog tests: ratings, activation, images and catalog queries.
"""

import pytest

from livemart.models import Product
from livemart.services import catalog_service
from livemart.validation import ValidationError, NotFoundError, PermissionDeniedError

from conftest import make_user, get_tokens, auth_headers


def bare_product(**overrides):
    data = {"name": "Toor Dal", "category": "Pulses", "base_price_cents": 15000, "is_active": True}
    data.update(overrides)
    return Product(**data)


class TestProductModel:
    def test_rating_running_average(self):
        p = bare_product(average_rating=0.0, review_count=0)
        p.update_rating(5)
        p.update_rating(4)
        p.update_rating(3)
        assert p.review_count == 3
        assert p.average_rating == pytest.approx(4.0)

    @pytest.mark.parametrize("rating", [0, 6, "5", True, None])
    def test_rating_out_of_range(self, rating):
        p = bare_product(average_rating=0.0, review_count=0)
        with pytest.raises(ValidationError):
            p.update_rating(rating)
        assert p.review_count == 0

    def test_toggle_active(self):
        p = bare_product()
        assert p.toggle_active() is False
        assert p.toggle_active() is True

    def test_images_are_unique_and_must_be_urls(self):
        p = bare_product(images=[])
        assert p.add_image("https://cdn.example.com/dal.png") is True
        assert p.add_image("https://cdn.example.com/dal.png") is False
        assert p.images == ["https://cdn.example.com/dal.png"]

        with pytest.raises(ValidationError):
            p.add_image("ftp://cdn.example.com/dal.png")

        assert p.remove_image("https://cdn.example.com/dal.png") is True
        assert p.remove_image("https://cdn.example.com/dal.png") is False
        assert p.images == []

    def test_popular_needs_reviews_and_rating(self):
        assert bare_product(review_count=10, average_rating=4.2).is_popular is True
        assert bare_product(review_count=9, average_rating=4.9).is_popular is False
        assert bare_product(review_count=50, average_rating=3.9).is_popular is False


class TestCatalogService:
    def test_rate_product_persists(self, product, db_session):
        catalog_service.rate_product(product.id, 4)
        catalog_service.rate_product(product.id, 2)

        db_session.expire_all()
        fresh = db_session.get(Product, product.id)
        assert fresh.review_count == 2
        assert fresh.average_rating == pytest.approx(3.0)

    def test_inactive_product_cannot_be_rated(self, product, retailer):
        catalog_service.toggle_product_active(product.id, retailer)
        with pytest.raises(ValidationError):
            catalog_service.rate_product(product.id, 5)

    def test_only_creator_or_admin_manages(self, product, admin, db_session):
        other = make_user("RETAILER")
        with pytest.raises(PermissionDeniedError):
            catalog_service.toggle_product_active(product.id, other)
        assert catalog_service.toggle_product_active(product.id, admin).is_active is False

    def test_remove_missing_image(self, product, retailer):
        with pytest.raises(NotFoundError):
            catalog_service.remove_product_image(product.id, retailer, "https://cdn.example.com/none.png")

    def test_top_rated_needs_five_reviews(self, product, retailer, db_session):
        runner_up = catalog_service.create_product(retailer, {
            "name": "Sona Masoori", "category": "Grains", "base_price_cents": 9000,
        })
        for _ in range(5):
            catalog_service.rate_product(product.id, 5)
            catalog_service.rate_product(runner_up.id, 4)
        sparse = catalog_service.create_product(retailer, {
            "name": "Red Rice", "category": "Grains", "base_price_cents": 9500,
        })
        catalog_service.rate_product(sparse.id, 5)

        assert [p.id for p in catalog_service.find_top_rated()] == [product.id, runner_up.id]
        assert [p.id for p in catalog_service.find_top_rated(limit=1)] == [product.id]

    def test_find_by_creator_includes_inactive(self, product, retailer):
        second = catalog_service.create_product(retailer, {
            "name": "Jaggery", "category": "Sweeteners", "base_price_cents": 5000,
        })
        catalog_service.toggle_product_active(product.id, retailer)

        assert [p.id for p in catalog_service.find_by_creator(retailer.id)] == [second.id, product.id]
        assert catalog_service.find_by_creator(retailer.id + 1000) == []


class TestCatalogRoutes:
    def test_customer_rates_product(self, client, customer_headers, product):
        resp = client.post(f"/api/products/{product.id}/rating", headers=customer_headers, json={"rating": 4})
        assert resp.status_code == 200
        assert resp.json["data"]["product"]["review_count"] == 1
        assert resp.json["data"]["product"]["average_rating"] == 4.0

        bad = client.post(f"/api/products/{product.id}/rating", headers=customer_headers, json={"rating": 9})
        assert bad.status_code == 400

    def test_sellers_cannot_rate(self, client, retailer_headers, product):
        resp = client.post(f"/api/products/{product.id}/rating", headers=retailer_headers, json={"rating": 5})
        assert resp.status_code == 403

    def test_toggle_hides_product_from_listing(self, client, retailer_headers, product):
        resp = client.post(f"/api/products/{product.id}/toggle-active", headers=retailer_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["product"]["is_active"] is False
        assert client.get("/api/products").json["data"]["products"] == []

        again = client.post(f"/api/products/{product.id}/toggle-active", headers=retailer_headers)
        assert again.json["message"] == "Product activated"

    def test_other_seller_cannot_toggle(self, client, product, db_session):
        other = make_user("RETAILER")
        headers = auth_headers(get_tokens(client, other.email)["access_token"])
        resp = client.post(f"/api/products/{product.id}/toggle-active", headers=headers)
        assert resp.status_code == 403

    def test_images(self, client, retailer_headers, product):
        url = "https://cdn.example.com/rice.png"
        resp = client.post(f"/api/products/{product.id}/images", headers=retailer_headers, json={"url": url})
        assert resp.status_code == 200
        assert resp.json["data"]["product"]["images"] == [url]

        bad = client.post(f"/api/products/{product.id}/images", headers=retailer_headers, json={"url": "rice.png"})
        assert bad.status_code == 400

        removed = client.delete(f"/api/products/{product.id}/images", headers=retailer_headers,
                                query_string={"url": url})
        assert removed.status_code == 200
        assert removed.json["data"]["product"]["images"] == []

        missing = client.delete(f"/api/products/{product.id}/images", headers=retailer_headers,
                                query_string={"url": url})
        assert missing.status_code == 404

    def test_top_rated_is_public(self, client):
        resp = client.get("/api/products/top-rated")
        assert resp.status_code == 200
        assert resp.json["data"]["products"] == []

    def test_by_creator(self, client, retailer_headers, customer_headers, admin_headers, retailer, product):
        mine = client.get(f"/api/products/by-creator/{retailer.id}", headers=retailer_headers)
        assert [p["id"] for p in mine.json["data"]["products"]] == [product.id]

        assert client.get(f"/api/products/by-creator/{retailer.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/products/by-creator/{retailer.id}", headers=customer_headers).status_code == 403
