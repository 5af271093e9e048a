import pytest

from core.scopes import AccessContext, PermissionScope, check_conditions, check_scope, normalize_scope

CALLER = AccessContext(person_id="p-1", tenant_id="t-1", company_id="c-1", department_id="d-1")


@pytest.mark.parametrize(
    ("scope", "resource", "expected"),
    [
        ("global", AccessContext(), True),
        ("tenant", AccessContext(tenant_id="t-1"), True),
        ("tenant", AccessContext(tenant_id="t-2"), False),
        ("company", AccessContext(tenant_id="t-1", company_id="c-1"), True),
        ("company", AccessContext(tenant_id="t-1", company_id="c-2"), False),
        ("department", AccessContext(department_id="d-1"), True),
        ("department", AccessContext(department_id="d-9"), False),
        ("personal", AccessContext(person_id="p-1"), True),
        ("personal", AccessContext(person_id="p-2"), False),
        ("galaxy", AccessContext(tenant_id="t-1"), False),
        (None, AccessContext(tenant_id="t-1"), False),
    ],
)
def test_check_scope(scope, resource: AccessContext, expected: bool) -> None:
    assert check_scope(scope, CALLER, resource) is expected


def test_missing_identifiers_never_match() -> None:
    caller = AccessContext(person_id="p-1")

    assert not check_scope("tenant", caller, AccessContext())
    assert not check_scope("company", caller, AccessContext())
    assert not check_scope("department", AccessContext(), AccessContext())


def test_check_scope_accepts_enum_members() -> None:
    assert check_scope(PermissionScope.TENANT, CALLER, AccessContext(tenant_id="t-1"))


def test_normalize_scope_defaults_to_tenant() -> None:
    assert normalize_scope("company") is PermissionScope.COMPANY
    assert normalize_scope("galaxy") is PermissionScope.TENANT
    assert normalize_scope(None) is PermissionScope.TENANT


def test_check_conditions() -> None:
    resource = AccessContext(person_id="p-1", tenant_id="t-1", company_id="c-2")

    assert check_conditions(None, CALLER, resource)
    assert check_conditions({}, CALLER, resource)
    assert check_conditions({"company_id": "c-2"}, CALLER, resource)
    assert check_conditions({"company_id": ["c-1", "c-2"]}, CALLER, resource)
    assert check_conditions({"person_id": "$caller"}, CALLER, resource)
    assert not check_conditions({"company_id": "$caller"}, CALLER, resource)
    assert not check_conditions({"company_id": "c-1"}, CALLER, resource)
    assert not check_conditions({"colour": "red"}, CALLER, resource)
    assert not check_conditions(["company_id"], CALLER, resource)


def test_access_context_from_mapping_ignores_unknown_keys() -> None:
    context = AccessContext.from_mapping({"tenant_id": "t-1", "role": "x"})

    assert context == AccessContext(tenant_id="t-1")
    assert AccessContext.from_mapping(None) == AccessContext()
