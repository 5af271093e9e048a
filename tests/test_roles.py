import pytest

from core.exceptions import ValidationError
from core.roles import (
    ASSIGNABLE_ROLES,
    CANONICAL_ROLES,
    ROLE_ALIASES,
    ROLE_PRIORITY,
    RoleType,
    can_assign_role,
    create_role_type,
    format_role_display_name,
    get_all_roles,
    get_assignable_roles,
    highest_priority_role,
    is_valid_role,
    map_role_type,
    validate_role_type,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("HR", "HR_MANAGER"),
        ("SYSTEM_USER", "OPERATOR"),
        ("superadmin", "SUPER_ADMIN"),
        ("Administrator", "ADMIN"),
        ("user", "EMPLOYEE"),
        ("company admin", "COMPANY_ADMIN"),
        ("company-admin", "COMPANY_ADMIN"),
        ("  trainer  ", "TRAINER"),
        ("Dipendente", "EMPLOYEE"),
        ("FORMATORE", "TRAINER"),
        ("Custom Reviewer", "CUSTOM_REVIEWER"),
    ],
)
def test_map_role_type(value: str, expected: str) -> None:
    assert map_role_type(value) == expected


def test_map_role_type_is_idempotent() -> None:
    for value in [*ROLE_ALIASES, *CANONICAL_ROLES, "hr", "Company Admin", "odd name!"]:
        mapped = map_role_type(value)
        assert map_role_type(mapped) == mapped


def test_map_role_type_keeps_canonical_roles() -> None:
    for role_type in CANONICAL_ROLES:
        assert map_role_type(role_type) == role_type


def test_map_role_type_rejects_empty() -> None:
    assert map_role_type("") == ""
    assert map_role_type("   ") == ""
    assert map_role_type(None) == ""
    assert map_role_type(5) == ""


def test_map_role_type_accepts_enum_members() -> None:
    assert map_role_type(RoleType.TRAINER) == "TRAINER"


def test_alias_keys_are_not_canonical() -> None:
    assert not set(ROLE_ALIASES) & CANONICAL_ROLES
    assert set(ROLE_ALIASES.values()) <= CANONICAL_ROLES


def test_create_role_type() -> None:
    assert create_role_type("Senior  Trainer") == "SENIOR_TRAINER"
    assert create_role_type("a.b-c") == "ABC"
    with pytest.raises(ValidationError):
        create_role_type("")
    with pytest.raises(ValidationError):
        create_role_type(None)


def test_validate_role_type() -> None:
    result = validate_role_type("hr")

    assert result["is_valid"]
    assert result["original_role"] == "hr"
    assert result["mapped_role"] == "HR_MANAGER"
    assert result["available_roles"] == get_all_roles()
    assert not validate_role_type("wizard")["is_valid"]


def test_is_valid_role_and_display_name() -> None:
    assert is_valid_role("TRAINER")
    assert not is_valid_role("trainer")
    assert format_role_display_name("COMPANY_ADMIN") == "Company Admin"
    assert format_role_display_name(None) == ""


def test_priority_covers_every_role() -> None:
    assert sorted(ROLE_PRIORITY) == sorted(get_all_roles())
    assert highest_priority_role(["EMPLOYEE", "TRAINER", "MANAGER"]) == "MANAGER"
    assert highest_priority_role([]) is None


def test_assignable_roles_are_canonical() -> None:
    for assigner, assignable in ASSIGNABLE_ROLES.items():
        assert assigner in CANONICAL_ROLES
        assert set(assignable) <= CANONICAL_ROLES

    assert set(get_assignable_roles("super admin")) == CANONICAL_ROLES
    assert get_assignable_roles("GUEST") == []
    assert get_assignable_roles("nonsense") == []


def test_only_the_highest_role_decides_what_can_be_assigned() -> None:
    assert can_assign_role(["SUPER_ADMIN"], "SUPER_ADMIN")
    assert can_assign_role(["ADMIN"], "trainer")
    assert not can_assign_role(["ADMIN"], "SUPER_ADMIN")
    assert not can_assign_role(["ADMIN"], "ADMIN")

    # HR_MANAGER outranks EMPLOYEE, so the employee's VIEWER grant does not count
    assert can_assign_role(["EMPLOYEE", "hr"], "SUPERVISOR")
    assert not can_assign_role(["EMPLOYEE", "HR_MANAGER"], "SUPER_ADMIN")
    assert not can_assign_role(["EMPLOYEE", "HR_MANAGER"], "VIEWER")

    assert not can_assign_role([], "EMPLOYEE")
    assert not can_assign_role(["GUEST"], "GUEST")
