"""Tests for edge cases and error handling."""
import pytest
from fastapi import status


class TestEdgeCases:
    """Test suite for edge cases and error scenarios."""

    def test_very_long_user_id(self, client, user_headers):
        """Test that an oversized user id in the path is rejected."""
        response = client.put(
            f"/v1/ghost/trust/{'a' * 300}",
            headers=user_headers("alice"),
            json={"trust": 0.5},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "maximum length" in response.json()["error"]["message"]

    def test_very_long_memory_id(self, client, user_headers):
        response = client.post(
            "/v1/access/check",
            headers=user_headers("bob"),
            json={"owner_id": "alice", "memory_id": "m" * 300},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_dotted_memory_id(self, client, user_headers):
        """Test that dots are rejected; they are reserved for composite IDs."""
        response = client.delete("/v1/memories/alice.mem_1", headers=user_headers("alice"))
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "dots" in response.json()["error"]["message"]

    def test_unicode_content(self, client, user_headers):
        """Test with unicode characters in content and tags."""
        response = client.post(
            "/v1/memories",
            headers=user_headers("alice"),
            json={"content": "喝咖啡 ☕ with Zoë", "tags": ["咖啡"]},
        )
        assert response.status_code == status.HTTP_201_CREATED
        memory = response.json()["memory"]
        assert memory["content"] == "喝咖啡 ☕ with Zoë"
        assert memory["tags"] == ["咖啡"]

    def test_tags_are_normalized(self, client, user_headers):
        response = client.post(
            "/v1/memories",
            headers=user_headers("alice"),
            json={"content": "Trail run", "tags": [" running ", "running", ""]},
        )
        assert response.json()["memory"]["tags"] == ["running"]

    def test_too_many_tags(self, client, user_headers):
        response = client.post(
            "/v1/memories",
            headers=user_headers("alice"),
            json={"content": "Tag soup", "tags": [f"tag{i}" for i in range(51)]},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_tag_too_long(self, client, user_headers):
        response = client.post(
            "/v1/memories",
            headers=user_headers("alice"),
            json={"content": "Long tag", "tags": ["x" * 65]},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_empty_content(self, client, user_headers):
        response = client.post("/v1/memories", headers=user_headers("alice"), json={"content": ""})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_malformed_json(self, client, user_headers):
        """Test with malformed JSON."""
        response = client.post(
            "/v1/memories",
            headers={**user_headers("alice"), "Content-Type": "application/json"},
            content='{"content": "unterminated',
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_extra_fields_ignored(self, client, user_headers):
        """Test that extra fields are ignored."""
        response = client.post(
            "/v1/memories",
            headers=user_headers("alice"),
            json={"content": "Extra", "unknown_field": "ignored"},
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert "unknown_field" not in response.json()["memory"]

    @pytest.mark.parametrize("body", [{"limit": 0}, {"limit": 101}, {"offset": -1}, {"min_weight": 1.5}])
    def test_search_bounds(self, client, user_headers, body):
        response = client.post("/v1/spaces/search", headers=user_headers("alice"), json=body)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_search_unknown_space(self, client, user_headers):
        response = client.post(
            "/v1/spaces/search", headers=user_headers("alice"), json={"spaces": ["the_attic"]}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["details"] == {"invalid_spaces": ["the_attic"]}

    def test_moderate_needs_one_destination(self, client, user_headers):
        response = client.post(
            "/v1/spaces/moderate",
            headers=user_headers("alice"),
            json={"memory_id": "alice.mem_1", "action": "approve"},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_moderation_action(self, client, user_headers):
        response = client.post(
            "/v1/spaces/moderate",
            headers=user_headers("alice"),
            json={"memory_id": "alice.mem_1", "action": "promote", "space_id": "the_void"},
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestRequestTracking:
    def test_request_id_is_echoed(self, client, user_headers):
        response = client.get(
            "/v1/ghost/config",
            headers={**user_headers("alice"), "X-Request-ID": "req-abc123"},
        )
        assert response.headers["X-Request-ID"] == "req-abc123"
        assert "X-Response-Time" in response.headers

    def test_request_id_generated(self, client):
        response = client.get("/healthz/live")
        assert response.headers["X-Request-ID"]

    def test_errors_carry_request_id(self, client, user_headers):
        response = client.post(
            "/v1/spaces/deny",
            headers={**user_headers("alice"), "X-Request-ID": "req-deny"},
            json={"token": "unknown"},
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"]["request_id"] == "req-deny"
