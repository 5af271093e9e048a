from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from core.permissions import PermissionCatalog
from core.scopes import AccessContext
from services.roles import AuthorizationService

RECORD = {"id": "p-9", "first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com", "salary": 10}


@pytest.fixture()
def authorization(session, clock, store) -> AuthorizationService:
    return AuthorizationService(session, clock=clock, store=store)


@pytest.fixture()
def manager(make_person, store):
    """A tenant t-1 manager with a tenant-wide read on persons."""
    person = make_person(tenant_id="t-1", company_id="c-1")
    role = store.add_role(person.id, "MANAGER", company_id="c-1", tenant_id="t-1")
    store.add_advanced_permission(role.id, {
        "resource": "persons",
        "action": "read",
        "scope": "tenant",
        "allowed_fields": ["id", "first_name", "last_name"],
    })
    return person, role


def test_unknown_person_is_denied(authorization) -> None:
    decision = authorization.evaluate("ghost", "persons", "read")

    assert not decision.allowed
    assert decision.reason == "Person not found"


def test_no_matching_permission_is_denied(authorization, manager) -> None:
    person, _ = manager

    assert not authorization.check_permission(person.id, "persons", "delete")
    assert authorization.evaluate(person.id, "courses", "read").reason == "No permission found"


def test_tenant_scope(authorization, manager) -> None:
    person, _ = manager

    assert authorization.check_permission(person.id, "persons", "read")
    assert authorization.check_permission(person.id, "persons", "read", AccessContext(tenant_id="t-1"))
    assert not authorization.check_permission(person.id, "persons", "read", AccessContext(tenant_id="t-2"))
    assert not authorization.check_permission(person.id, "persons", "read", AccessContext())


def test_company_and_personal_scopes(authorization, make_person, store) -> None:
    person = make_person(tenant_id="t-1", company_id="c-1")
    role = store.add_role(person.id, "EMPLOYEE", tenant_id="t-1")
    store.add_advanced_permission(role.id, {"resource": "courses", "action": "read", "scope": "company"})
    store.add_advanced_permission(role.id, {"resource": "profile", "action": "update", "scope": "personal"})

    assert authorization.check_permission(person.id, "courses", "read", AccessContext(company_id="c-1"))
    assert not authorization.check_permission(person.id, "courses", "read", AccessContext(company_id="c-2"))
    assert authorization.check_permission(person.id, "profile", "update", AccessContext(person_id=person.id))
    assert not authorization.check_permission(person.id, "profile", "update", AccessContext(person_id="other"))


def test_expired_or_removed_roles_grant_nothing(authorization, make_person, store, clock) -> None:
    person = make_person()
    expired = store.add_role(person.id, "TRAINER", tenant_id="t-1", valid_until=clock.now + timedelta(minutes=1))
    store.add_advanced_permission(expired.id, {"resource": "courses", "action": "read", "scope": "global"})
    removed = store.add_role(person.id, "MANAGER", tenant_id="t-1")
    store.add_advanced_permission(removed.id, {"resource": "persons", "action": "read", "scope": "global"})

    assert authorization.check_permission(person.id, "courses", "read")
    clock.advance(hours=1)
    store.remove_role(person.id, "MANAGER", tenant_id="t-1")

    assert not authorization.check_permission(person.id, "courses", "read")
    assert not authorization.check_permission(person.id, "persons", "read")


def test_conditions_restrict_the_resource(authorization, make_person, store) -> None:
    person = make_person(tenant_id="t-1")
    role = store.add_role(person.id, "HR_MANAGER", tenant_id="t-1")
    store.add_advanced_permission(role.id, {
        "resource": "persons",
        "action": "update",
        "scope": "tenant",
        "conditions": {"company_id": ["c-1", "c-2"]},
    })

    assert authorization.check_permission(
        person.id, "persons", "update", AccessContext(tenant_id="t-1", company_id="c-2")
    )
    assert not authorization.check_permission(
        person.id, "persons", "update", AccessContext(tenant_id="t-1", company_id="c-3")
    )


def test_filter_allowed_fields_projects_the_record(authorization, manager) -> None:
    person, _ = manager

    assert authorization.filter_allowed_fields(person.id, "persons", "read", RECORD) == {
        "id": "p-9",
        "first_name": "Ada",
        "last_name": "Lovelace",
    }


def test_filter_allowed_fields_unions_passing_permissions(authorization, manager, store) -> None:
    person, role = manager
    store.add_advanced_permission(role.id, {
        "resource": "persons",
        "action": "read",
        "scope": "company",
        "allowed_fields": ["email", "phone"],
    })
    # Only in scope for tenant t-2, so it never passes for t-1 records
    store.add_advanced_permission(role.id, {
        "resource": "persons",
        "action": "read",
        "scope": "tenant",
        "allowed_fields": ["salary"],
        "conditions": {"tenant_id": "t-2"},
    })

    context = AccessContext(tenant_id="t-1", company_id="c-1")
    decision = authorization.evaluate(person.id, "persons", "read", context)

    assert decision.scopes == ["tenant", "company"]
    assert authorization.filter_allowed_fields(person.id, "persons", "read", RECORD, context) == {
        "id": "p-9",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
    }


def test_wildcard_and_missing_field_lists_allow_everything(authorization, make_person, store) -> None:
    person = make_person()
    role = store.add_role(person.id, "ADMIN", tenant_id="t-1")
    store.add_advanced_permission(role.id, {"resource": "persons", "action": "read", "allowed_fields": ["*"]})
    store.add_advanced_permission(role.id, {"resource": "companies", "action": "read"})

    assert authorization.filter_allowed_fields(person.id, "persons", "read", RECORD) == RECORD
    assert authorization.filter_allowed_fields(person.id, "companies", "read", RECORD) == RECORD
    assert authorization.evaluate(person.id, "persons", "read").allowed_fields == ["*"]


def test_filter_allowed_fields_default_without_permission(session, clock, store, manager) -> None:
    person, _ = manager

    deny = AuthorizationService(session, clock=clock, store=store, field_default="deny")
    allow = AuthorizationService(session, clock=clock, store=store, field_default="allow")

    assert deny.filter_allowed_fields(person.id, "courses", "read", RECORD) == {}
    assert allow.filter_allowed_fields(person.id, "courses", "read", RECORD) == RECORD


def test_out_of_scope_records_stay_hidden_with_allow_default(session, clock, store, manager) -> None:
    person, _ = manager
    other_tenant = AccessContext(tenant_id="t-2")

    allow = AuthorizationService(session, clock=clock, store=store, field_default="allow")

    assert allow.evaluate(person.id, "persons", "read", other_tenant).reason == "Out of scope"
    assert allow.filter_allowed_fields(person.id, "persons", "read", RECORD, other_tenant) == {}
    assert allow.filter_allowed_fields("ghost", "persons", "read", RECORD) == {}


def test_invalid_field_default_is_rejected(session) -> None:
    with pytest.raises(ValueError):
        AuthorizationService(session, field_default="maybe")


def test_get_person_advanced_permissions(authorization, manager, store) -> None:
    person, role = manager
    store.add_role(person.id, "VIEWER", tenant_id="t-1")

    permissions = authorization.get_person_advanced_permissions(person.id)

    assert len(permissions) == 1
    assert permissions[0]["role_id"] == role.id
    assert permissions[0]["role_type"] == "MANAGER"
    assert permissions[0]["scope"] == "tenant"
    assert permissions[0]["allowed_fields"] == ["id", "first_name", "last_name"]


def test_get_person_permissions_combines_defaults_and_grants(authorization, make_person, store, session) -> None:
    person = make_person()
    role = store.add_role(person.id, "EMPLOYEE", tenant_id="t-1")
    store.update_role_permissions(role.id, ["VIEW_USERS", "NOT_IN_CATALOG"])

    permissions = authorization.get_person_permissions(person.id)

    assert permissions == ["VIEW_COURSES", "VIEW_SCHEDULES", "VIEW_USERS"]
    assert authorization.has_permission(person.id, "VIEW_USERS")
    assert not authorization.has_permission(person.id, "DELETE_USERS")
    assert not authorization.has_permission(person.id, "NOT_IN_CATALOG")


def test_revoked_grants_remove_defaults(authorization, make_person, store, session) -> None:
    from database.models import RolePermission

    person = make_person()
    role = store.add_role(person.id, "EMPLOYEE", tenant_id="t-1")
    session.add(RolePermission(person_role_id=role.id, permission="VIEW_SCHEDULES", is_granted=False))
    session.commit()

    assert authorization.get_person_permissions(person.id) == ["VIEW_COURSES"]


def test_custom_catalog_limits_permissions(session, clock, make_person) -> None:
    catalog = PermissionCatalog({}, ["VIEW_COURSES"])
    authorization = AuthorizationService(session, catalog=catalog, clock=clock)
    person = make_person()
    authorization.store.add_role(person.id, "EMPLOYEE", tenant_id="t-1")

    assert authorization.get_person_permissions(person.id) == ["VIEW_COURSES"]


def test_failing_lookup_is_skipped(authorization, make_person, store, monkeypatch) -> None:
    person = make_person()
    first = store.add_role(person.id, "EMPLOYEE", tenant_id="t-1")
    second = store.add_role(person.id, "TRAINER", tenant_id="t-1")
    store.add_advanced_permission(second.id, {"resource": "courses", "action": "read"})
    original = store.get_advanced_permissions

    def flaky(role_id, **kwargs):
        if role_id == first.id:
            raise OperationalError("SELECT", {}, Exception("connection lost"))
        return original(role_id, **kwargs)

    monkeypatch.setattr(store, "get_advanced_permissions", flaky)

    permissions = authorization.get_person_advanced_permissions(person.id)

    assert [p["role_id"] for p in permissions] == [second.id]


def test_storage_errors_propagate_from_evaluate(authorization, manager, store, monkeypatch) -> None:
    person, _ = manager

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(store, "get_effective_roles", broken)

    with pytest.raises(OperationalError):
        authorization.check_permission(person.id, "persons", "read")
