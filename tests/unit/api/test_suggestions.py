"""Unit Tests for the Suggestions Endpoint."""

from unittest.mock import AsyncMock, patch

import pytest


class TestSuggestionsEndpoint:
    @pytest.fixture
    def service(self):
        service = AsyncMock()
        service.get_all = AsyncMock(
            return_value={
                "get_started": ["How many customers are in each state?"],
                "contextual": ["Show only top 10"],
                "people_also_asked": ["show all customers"],
            }
        )
        with patch.dict("querycompass.api.main.app_state", {"suggestion_service": service}):
            yield service

    def test_returns_camel_case_lists(self, client, service, auth_headers):
        response = client.get(
            "/api/v1/suggestions/sales_db", params={"conversationId": "c1"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "getStarted": ["How many customers are in each state?"],
            "contextual": ["Show only top 10"],
            "peopleAlsoAsked": ["show all customers"],
        }
        service.get_all.assert_awaited_once_with("sales_db", user_id="u1", conversation_id="c1")

    def test_unavailable_service_returns_503(self, client, auth_headers):
        with patch.dict("querycompass.api.main.app_state", {"suggestion_service": None}):
            response = client.get("/api/v1/suggestions/sales_db", headers=auth_headers)

        assert response.status_code == 503
