"""
HTTP tests for /api/users: profile management and admin account control.
"""

import pytest

from conftest import PASSWORD, make_user, get_tokens, auth_headers


class TestProfile:
    def test_get_profile(self, client, customer_headers, customer):
        resp = client.get("/api/users/me", headers=customer_headers)
        assert resp.status_code == 200
        profile = resp.json["data"]["user"]["profile"]
        assert profile["name"] == customer.name
        assert profile["preferences"]["currency"] == "INR"

    def test_update_profile(self, client, customer_headers):
        resp = client.patch("/api/users/me", headers=customer_headers, json={
            "name": "Renamed Shopper",
            "address": {"street": "1 Park St", "city": "Kolkata", "state": "WB", "zip_code": "700016"},
            "preferences": {"delivery_radius_km": 25, "notifications": {"promotions": True}},
        })

        assert resp.status_code == 200
        profile = resp.json["data"]["user"]["profile"]
        assert profile["name"] == "Renamed Shopper"
        assert profile["address"]["country"] == "India"
        assert profile["preferences"]["delivery_radius_km"] == 25
        assert profile["preferences"]["notifications"]["promotions"] is True
        assert profile["preferences"]["notifications"]["email_enabled"] is True

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "new@example.com"},
            {"role": "ADMIN"},
            {"name": "x"},
            {"preferences": {"delivery_radius_km": 500}},
            {"preferences": {"theme": "dark"}},
            {"address": {"street": "only street"}},
            {"avatar_url": "ftp://example.com/a.png"},
        ],
    )
    def test_invalid_profile_updates_rejected(self, client, customer_headers, body):
        resp = client.patch("/api/users/me", headers=customer_headers, json=body)
        assert resp.status_code == 400

    def test_self_deactivation_ends_session(self, client, customer):
        tokens = get_tokens(client, customer.email)
        headers = auth_headers(tokens["access_token"])

        resp = client.post("/api/users/me/deactivate", headers=headers)
        assert resp.status_code == 200

        assert client.get("/api/users/me", headers=headers).status_code == 401
        login = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        assert login.status_code == 403


class TestAdmin:
    def test_non_admin_forbidden(self, client, customer_headers):
        assert client.get("/api/users", headers=customer_headers).status_code == 403

    def test_requires_auth(self, client):
        assert client.get("/api/users").status_code == 401

    def test_list_and_filter(self, client, admin_headers, customer, retailer):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200
        assert {u["email"] for u in resp.json["data"]["users"]} == {
            "admin@example.com", "customer@example.com", "retailer@example.com",
        }

        resp = client.get("/api/users?role=retailer", headers=admin_headers)
        assert [u["email"] for u in resp.json["data"]["users"]] == ["retailer@example.com"]

    def test_bad_pagination(self, client, admin_headers):
        assert client.get("/api/users?limit=0", headers=admin_headers).status_code == 400
        assert client.get("/api/users?active=maybe", headers=admin_headers).status_code == 400

    def test_get_user(self, client, admin_headers, customer):
        resp = client.get(f"/api/users/{customer.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["id"] == customer.id
        assert client.get("/api/users/9999", headers=admin_headers).status_code == 404

    def test_deactivate_and_activate(self, client, admin_headers, customer):
        tokens = get_tokens(client, customer.email)

        resp = client.post(f"/api/users/{customer.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["is_active"] is False

        # already deactivated
        again = client.post(f"/api/users/{customer.id}/deactivate", headers=admin_headers)
        assert again.status_code == 409

        # outstanding tokens stop working for a deactivated account
        assert client.get("/api/auth/me", headers=auth_headers(tokens["access_token"])).status_code == 401
        refresh = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refresh.status_code == 401

        resp = client.post(f"/api/users/{customer.id}/activate", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["is_active"] is True
        get_tokens(client, customer.email)

    def test_admin_cannot_deactivate_self_here(self, client, admin_headers, admin):
        resp = client.post(f"/api/users/{admin.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 400


class TestWishlist:
    def test_add_list_remove(self, client, customer_headers, product):
        resp = client.post("/api/users/me/wishlist", headers=customer_headers, json={"product_id": product.id})
        assert resp.status_code == 200
        assert resp.json["data"]["wishlist"] == [product.id]

        # adding twice keeps a single entry
        again = client.post("/api/users/me/wishlist", headers=customer_headers, json={"product_id": product.id})
        assert again.json["data"]["wishlist"] == [product.id]

        listed = client.get("/api/users/me/wishlist", headers=customer_headers)
        assert [p["name"] for p in listed.json["data"]["products"]] == ["Basmati Rice"]

        removed = client.delete(f"/api/users/me/wishlist/{product.id}", headers=customer_headers)
        assert removed.status_code == 200
        assert removed.json["data"]["wishlist"] == []

        missing = client.delete(f"/api/users/me/wishlist/{product.id}", headers=customer_headers)
        assert missing.status_code == 404

    @pytest.mark.parametrize("body", [{"product_id": 9999}, {"product_id": "1"}, {}, [1]])
    def test_bad_product(self, client, customer_headers, product, body):
        resp = client.post("/api/users/me/wishlist", headers=customer_headers, json=body)
        assert resp.status_code in (400, 404)

    def test_sellers_have_no_wishlist(self, client, retailer_headers):
        assert client.get("/api/users/me/wishlist", headers=retailer_headers).status_code == 403


class TestLoyalty:
    def test_award_and_redeem(self, client, admin_headers, customer, customer_headers):
        award = client.post(f"/api/users/{customer.id}/loyalty-points", headers=admin_headers, json={"points": 120})
        assert award.status_code == 200
        assert award.json["data"]["loyalty_points"] == 120

        redeem = client.post("/api/users/me/loyalty-points/redeem", headers=customer_headers, json={"points": 100})
        assert redeem.status_code == 200
        assert redeem.json["data"]["loyalty_points"] == 20

        too_many = client.post("/api/users/me/loyalty-points/redeem", headers=customer_headers, json={"points": 21})
        assert too_many.status_code == 409

        profile = client.get("/api/users/me", headers=customer_headers).json["data"]["user"]
        assert profile["details"]["loyalty_points"] == 20

    @pytest.mark.parametrize("points", [0, -5, "10", 2.5, True])
    def test_points_must_be_positive_int(self, client, admin_headers, customer, points):
        resp = client.post(f"/api/users/{customer.id}/loyalty-points", headers=admin_headers, json={"points": points})
        assert resp.status_code == 400

    def test_only_customers_hold_points(self, client, admin_headers, retailer):
        resp = client.post(f"/api/users/{retailer.id}/loyalty-points", headers=admin_headers, json={"points": 5})
        assert resp.status_code == 400

    def test_customer_cannot_award_self(self, client, customer_headers, customer):
        resp = client.post(f"/api/users/{customer.id}/loyalty-points", headers=customer_headers, json={"points": 5})
        assert resp.status_code == 403

    def test_leaders(self, client, admin_headers, customer):
        rich = make_user("CUSTOMER")
        client.post(f"/api/users/{customer.id}/loyalty-points", headers=admin_headers, json={"points": 50})
        client.post(f"/api/users/{rich.id}/loyalty-points", headers=admin_headers, json={"points": 500})

        resp = client.get("/api/users/loyalty?min_points=50", headers=admin_headers)
        assert [u["id"] for u in resp.json["data"]["users"]] == [rich.id, customer.id]

        resp = client.get("/api/users/loyalty?min_points=100", headers=admin_headers)
        assert [u["id"] for u in resp.json["data"]["users"]] == [rich.id]

        assert client.get("/api/users/loyalty?min_points=lots", headers=admin_headers).status_code == 400


def test_new_users_get_their_own_preferences(customer, retailer):
    from livemart.models.users import DEFAULT_PREFERENCES

    customer.preferences["notifications"]["promotions"] = True
    customer.preferences["categories"].append("grocery")

    assert DEFAULT_PREFERENCES["notifications"]["promotions"] is False
    assert DEFAULT_PREFERENCES["categories"] == []
    assert retailer.preferences["notifications"] is not customer.preferences["notifications"]
