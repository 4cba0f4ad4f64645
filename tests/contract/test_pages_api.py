"""
Contract tests for the page controllers.

Tests verify:
- Sign-in redirects for anonymous callers and authentication failures
- Error page redirect for unknown transformation types
- Render model shapes
"""

import pytest
from unittest.mock import AsyncMock

from api.src.errors import AuthenticationError
from tests.fakes import as_caller


class TestProfilePage:
    """Contract for GET /profile."""

    def test_anonymous_is_redirected_to_sign_in(self, client):
        response = client.get("/profile")

        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in"

    def test_render_model(self, client, seed_account, seed_images):
        owner = seed_account("user_ada", credit_balance=8)
        seed_images(owner["_id"], 3)

        response = client.get("/profile", headers=as_caller("user_ada"))

        assert response.status_code == 200
        body = response.json()
        assert body["credit_balance"] == 8
        assert body["image_count"] == 3
        assert body["page"] == 1
        assert body["paginated_images"]["total_pages"] == 1
        assert [image["title"] for image in body["paginated_images"]["data"]] == ["img 2", "img 1", "img 0"]
        assert body["paginated_images"]["data"][0]["author"]["identity_id"] == "user_ada"
        assert response.headers["etag"] == 'W/"profile-0"'

    def test_second_page(self, client, seed_account, seed_images):
        owner = seed_account("user_ada")
        seed_images(owner["_id"], 11)

        body = client.get("/profile?page=2", headers=as_caller("user_ada")).json()

        assert body["page"] == 2
        assert body["image_count"] == 2
        assert body["paginated_images"]["total_pages"] == 2

    def test_navigation_links(self, client, seed_account, seed_images):
        owner = seed_account("user_ada")
        seed_images(owner["_id"], 20)

        first = client.get("/profile", headers=as_caller("user_ada")).json()
        last = client.get("/profile?page=3", headers=as_caller("user_ada")).json()

        assert first["links"] == {"previous_page_url": None, "next_page_url": "/profile?page=2"}
        assert last["links"] == {"previous_page_url": "/profile?page=2", "next_page_url": None}

    def test_page_beyond_integer_range_is_empty(self, client, seed_account, seed_images):
        owner = seed_account("user_ada")
        seed_images(owner["_id"], 3)

        response = client.get(f"/profile?page={10 ** 19}", headers=as_caller("user_ada"))

        assert response.status_code == 200
        body = response.json()
        assert body["paginated_images"]["data"] == []
        assert body["paginated_images"]["total_pages"] == 1
        assert body["image_count"] == 0
        assert body["links"]["previous_page_url"] == "/profile?page=1"

    @pytest.mark.parametrize("raw_page", ["abc", "0", "-3", ""])
    def test_unusable_page_falls_back_to_first(self, client, seed_account, raw_page):
        seed_account("user_ada")

        body = client.get(f"/profile?page={raw_page}", headers=as_caller("user_ada")).json()

        assert body["page"] == 1

    def test_unsynced_account_is_not_found(self, client):
        response = client.get("/profile", headers=as_caller("user_ghost"))

        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found Error: User not found", "error_code": "Not Found Error"}

    def test_authentication_failure_redirects_to_sign_in(self, client, app):
        app.state.account_repo.get_account_by_identity_id = AsyncMock(
            side_effect=AuthenticationError("Authentication failed. Please check your credentials and try again.")
        )

        response = client.get("/profile", headers=as_caller("user_ada"))

        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in"


class TestAddTransformationPage:
    """Contract for GET /transformations/add/{type}."""

    def test_render_model(self, client, seed_account):
        owner = seed_account("user_ada", credit_balance=4)

        response = client.get("/transformations/add/recolor", headers=as_caller("user_ada"))

        assert response.status_code == 200
        assert response.json() == {
            "transformation_type": "recolor",
            "title": "Object Recolor",
            "subtitle": "Identify and recolor objects from the image",
            "transformation_config": {"recolor": {"prompt": "", "to": "", "multiple": True}},
            "owner_id": str(owner["_id"]),
            "credit_balance": 4,
        }

    def test_query_prefills_config_over_defaults(self, client, seed_account):
        seed_account("user_ada")

        response = client.get(
            "/transformations/add/recolor?config[recolor][prompt]=car&config[recolor][to]=red",
            headers=as_caller("user_ada"),
        )

        assert response.json()["transformation_config"] == {
            "recolor": {"prompt": "car", "to": "red", "multiple": True}
        }

    def test_unknown_type_redirects_to_error_page(self, client, seed_account):
        seed_account("user_ada")

        response = client.get("/transformations/add/sharpen", headers=as_caller("user_ada"))

        assert response.status_code == 307
        assert response.headers["location"] == "/error"

    def test_anonymous_is_redirected_to_sign_in(self, client):
        response = client.get("/transformations/add/restore")

        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in"
