"""Tests for the error taxonomy and user-facing messages."""

import pytest

from lab_catalog.core.errors import (
    CONFLICT_MESSAGE,
    GENERIC_MESSAGE,
    NETWORK_MESSAGE,
    NOT_FOUND_MESSAGE,
    PERMISSION_MESSAGE,
    SERVER_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    UNAVAILABLE_MESSAGE,
    AggregationError,
    ClientError,
    EntityNotFoundError,
    EntityVersionRequiredError,
    NetworkError,
    ServerError,
    remote_error_for_status,
    user_message_for_status,
)


class TestUserMessageForStatus:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (None, NETWORK_MESSAGE),
            (401, SESSION_EXPIRED_MESSAGE),
            (403, PERMISSION_MESSAGE),
            (404, NOT_FOUND_MESSAGE),
            (409, CONFLICT_MESSAGE),
            (500, SERVER_MESSAGE),
            (502, SERVER_MESSAGE),
            (503, UNAVAILABLE_MESSAGE),
            (418, GENERIC_MESSAGE),
        ],
    )
    def test_user_message_for_status_maps_each_class(self, status, expected):
        assert user_message_for_status(status) == expected


class TestRemoteErrors:
    def test_remote_error_for_status_classifies_4xx_and_5xx(self):
        client = remote_error_for_status("get_analysis", 404, "Analysis 9 not found")
        server = remote_error_for_status("get_analysis", 502)

        assert isinstance(client, ClientError)
        assert isinstance(server, ServerError)
        assert client.user_message == NOT_FOUND_MESSAGE
        assert str(client) == "get_analysis failed with HTTP 404: Analysis 9 not found"

    def test_network_error_has_no_status_and_network_message(self):
        error = NetworkError("list_versions", "connection refused")

        assert error.status_code is None
        assert error.user_message == NETWORK_MESSAGE


class TestLocalErrors:
    def test_entity_not_found_is_a_lookup_error(self):
        error = EntityNotFoundError("Nbu", 12)

        assert isinstance(error, LookupError)
        assert error.entity_id == 12
        assert "Nbu with id 12" in str(error)

    def test_entity_version_required_is_a_value_error(self):
        assert isinstance(EntityVersionRequiredError("Analysis"), ValueError)

    def test_aggregation_error_lists_associations_first(self):
        error = AggregationError(["add 4 failed"], ["remove 1 failed"])

        assert error.messages == ["add 4 failed", "remove 1 failed"]
        assert str(error) == "2 membership call(s) failed"
