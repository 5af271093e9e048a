from datetime import datetime, timedelta

from core.filters import (
    calculate_offset,
    create_pagination_response,
    filter_advanced_permission_data,
    filter_array_data,
    filter_custom_role_data,
    filter_query_params,
    filter_role_assignment_data,
    filter_role_data,
    filter_search_params,
    filter_user_data,
    group_permissions_by_resource,
    limit_pagination_params,
    project,
    sanitize_string,
    sanitize_user_data,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


def fixed_clock() -> datetime:
    return NOW


def test_project_keeps_only_present_allowed_fields() -> None:
    entity = {"id": "1", "first_name": "Ada", "password_hash": "x"}

    assert project(entity, ["id", "first_name", "email"]) == {"id": "1", "first_name": "Ada"}
    assert project(entity, []) == {}
    assert project({}, ["id"]) == {}
    assert project(None, ["id"]) == {}


def test_project_keeps_falsy_values() -> None:
    assert project({"a": None, "b": 0, "c": ""}, ["a", "b", "c"]) == {"a": None, "b": 0, "c": ""}


def test_sanitize_string() -> None:
    assert sanitize_string('  <b>"hi"</b>\x00 ') == "bhi/b"
    assert sanitize_string("it's") == "its"
    assert len(sanitize_string("x" * 5000)) == 1000
    assert sanitize_string(12) == ""


def test_sanitize_user_data_drops_credentials() -> None:
    person = {"id": "p", "password_hash": "h", "reset_token": "r", "password": "p", "email": "e"}

    assert sanitize_user_data(person) == {"id": "p", "email": "e"}
    assert sanitize_user_data(None) is None


def test_filter_user_and_role_data() -> None:
    assert filter_user_data({"id": "1", "email": "<a@b>", "password_hash": "x"}) == {"id": "1", "email": "a@b"}
    assert filter_user_data("nope") is None
    assert filter_role_data({"name": "Trainer", "permissions": ["<X>"], "secret": 1}) == {
        "name": "Trainer",
        "permissions": ["X"],
    }


def test_filter_custom_role_data_defaults() -> None:
    filtered = filter_custom_role_data({"name": "Auditors", "tenant_access": "EVERYWHERE", "is_active": "yes"})

    assert filtered == {"name": "Auditors", "tenant_access": "SPECIFIC", "is_active": True}
    assert filter_custom_role_data({"tenant_access": "ALL"})["tenant_access"] == "ALL"
    assert filter_custom_role_data({})["tenant_access"] == "SPECIFIC"


def test_filter_role_assignment_drops_past_or_invalid_expiry() -> None:
    future = NOW + timedelta(days=3)

    kept = filter_role_assignment_data({"person_id": "p", "expires_at": future.isoformat()}, clock=fixed_clock)
    assert kept["expires_at"] == future

    past = filter_role_assignment_data({"person_id": "p", "expires_at": "2020-01-01T00:00:00Z"}, clock=fixed_clock)
    assert "expires_at" not in past

    invalid = filter_role_assignment_data({"person_id": "p", "expires_at": "tomorrow"}, clock=fixed_clock)
    assert invalid == {"person_id": "p"}


def test_filter_advanced_permission_data() -> None:
    filtered = filter_advanced_permission_data({
        "resource": "persons",
        "action": "read",
        "scope": "galaxy",
        "allowed_fields": "id",
        "conditions": ["x"],
        "extra": True,
    })

    assert filtered == {"resource": "persons", "action": "read", "scope": "tenant"}
    assert filter_advanced_permission_data({"scope": "company"})["scope"] == "company"


def test_filter_query_and_search_params() -> None:
    assert filter_query_params({"page": 2, "limit": -5, "search": "<x>", "bogus": 1}) == {
        "page": 2,
        "limit": 0,
        "search": "x",
    }
    assert filter_search_params({"search": "a" * 300, "sort": "name", "order": "sideways"}) == {
        "search": "a" * 100,
        "sort": "name",
    }
    assert filter_search_params(None) == {}


def test_filter_array_data() -> None:
    assert filter_array_data([{"id": "1"}, "x", {"id": "2"}], filter_user_data) == [{"id": "1"}, {"id": "2"}]
    assert filter_array_data("x", filter_user_data) == []


def test_limit_pagination_params() -> None:
    assert limit_pagination_params({}) == {"page": 1, "limit": 20}
    assert limit_pagination_params(None) == {"page": 1, "limit": 20}
    assert limit_pagination_params({"page": 0, "limit": 0}) == {"page": 1, "limit": 1}
    assert limit_pagination_params({"page": "5000", "limit": "500"}) == {"page": 1000, "limit": 100}
    assert limit_pagination_params({"page": "abc", "limit": -3}) == {"page": 1, "limit": 1}


def test_pagination_response() -> None:
    assert calculate_offset(3, 20) == 40
    assert create_pagination_response(2, 10, 35) == {
        "current_page": 2,
        "total_pages": 4,
        "total_items": 35,
        "items_per_page": 10,
        "has_next_page": True,
        "has_previous_page": True,
    }


def test_group_permissions_by_resource() -> None:
    grouped = group_permissions_by_resource([
        {"resource": "persons", "action": "read", "scope": "tenant"},
        {"resource": "persons", "action": "update", "scope": "personal"},
        {"action": "read"},
    ])

    assert [p["action"] for p in grouped["persons"]] == ["read", "update"]
    assert grouped["general"][0]["action"] == "read"
    assert group_permissions_by_resource(None) == {}


def test_pagination_and_sanitization_examples() -> None:
    assert limit_pagination_params({"page": -5, "limit": 1000}) == {"page": 1, "limit": 100}
    assert limit_pagination_params({"page": 3, "limit": 0}) == {"page": 3, "limit": 1}
    assert sanitize_string("  <b>hi</b>'  ") == "bhi/b"
