from __future__ import annotations

import pytest

from app.core.errors import ForbiddenError, ValidationFailedError
from app.models.membership import CAPABILITY_FIELDS
from app.services import permissions
from app.services.memberships import build_membership, default_capabilities
from app.services.permissions import Capability, RoleCheck


@pytest.mark.parametrize("requirement", [*Capability, *RoleCheck])
def test_super_admin_passes_every_check_without_memberships(db_session, make_user, make_masjid, requirement):
    root = make_user("Root", is_super_admin=True)
    masjid = make_masjid()

    decision = permissions.check_permission(db_session, root, masjid.id, requirement)

    assert decision.allowed
    assert permissions.load_memberships(db_session, root.id, masjid.id) == []


def test_anonymous_actor_is_denied():
    decision = permissions.decide(None, [], Capability.VIEW_QUESTIONS)
    assert not decision
    assert decision.reason == "Authentication required"


def test_non_member_is_denied(db_session, make_user, make_masjid):
    outsider = make_user("Outsider")
    masjid = make_masjid()

    decision = permissions.check_permission(db_session, outsider, masjid.id, RoleCheck.IS_MEMBER)

    assert not decision.allowed
    assert decision.reason == "Not a member of this masjid"


def test_capability_bits_decide_fine_grained_checks(db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    regular_imam = make_user("Imam One")
    restricted_imam = make_user("Imam Two")
    add_membership(regular_imam, masjid, "imam")
    add_membership(restricted_imam, masjid, "imam", can_change_prayer_times=False)

    assert permissions.check_permission(db_session, regular_imam, masjid.id, Capability.CHANGE_PRAYER_TIMES)
    denied = permissions.check_permission(db_session, restricted_imam, masjid.id, Capability.CHANGE_PRAYER_TIMES)
    assert not denied.allowed
    assert denied.reason == "Missing permission: can_change_prayer_times"
    # The role label alone still satisfies the coarse check.
    assert permissions.check_permission(db_session, restricted_imam, masjid.id, RoleCheck.IS_IMAM)


def test_management_checks_ignore_capability_bits(db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    imam = make_user("Imam")
    add_membership(admin, masjid, "admin", **{field: False for field in CAPABILITY_FIELDS})
    add_membership(imam, masjid, "imam")

    assert permissions.check_permission(db_session, admin, masjid.id, RoleCheck.MANAGE_USERS)
    assert permissions.check_permission(db_session, admin, masjid.id, RoleCheck.MANAGE_MASJID)
    assert not permissions.check_permission(db_session, admin, masjid.id, Capability.CREATE_EVENTS)

    denied = permissions.check_permission(db_session, imam, masjid.id, RoleCheck.MANAGE_USERS)
    assert denied.reason == "Only masjid admins can manage users"


def test_capability_granted_by_any_row(db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    user = make_user("Dual Role")
    add_membership(user, masjid, "imam", can_view_complaints=False)
    add_membership(user, masjid, "admin", can_view_complaints=True, can_create_events=False)

    assert permissions.check_permission(db_session, user, masjid.id, Capability.VIEW_COMPLAINTS)
    summary = permissions.effective_permissions(db_session, user, masjid.id)
    assert summary["roles"] == ["admin", "imam"]
    assert summary["permissions"]["can_create_events"] is True


def test_ensure_permission_raises_forbidden_with_reason(db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    imam = make_user("Imam")
    add_membership(imam, masjid, "imam")

    with pytest.raises(ForbiddenError) as excinfo:
        permissions.ensure_permission(db_session, imam, masjid.id, Capability.ANSWER_COMPLAINTS)
    assert excinfo.value.message == "Missing permission: can_answer_complaints"


def test_default_capabilities_by_role():
    admin = default_capabilities("admin")
    imam = default_capabilities("imam")

    assert all(admin.values())
    assert imam["can_view_complaints"] is False
    assert imam["can_answer_complaints"] is False
    assert imam["can_change_prayer_times"] is True


def test_build_membership_always_seeds_every_capability():
    membership = build_membership(user_id=1, masjid_id=1, role="imam", overrides={"can_create_events": False})

    assert set(membership.capabilities()) == set(CAPABILITY_FIELDS)
    assert membership.can_create_events is False
    assert membership.can_view_questions is True


def test_build_membership_rejects_unknown_role_and_capability():
    with pytest.raises(ValidationFailedError):
        build_membership(user_id=1, masjid_id=1, role="muezzin")
    with pytest.raises(ValidationFailedError):
        build_membership(user_id=1, masjid_id=1, role="admin", overrides={"can_fly": True})


def test_permissions_endpoint_reports_effective_flags(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    imam = make_user("Imam")
    add_membership(imam, masjid, "imam")

    authorize(imam)
    resp = client.get(f"/masajids/{masjid.id}/permissions")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["roles"] == ["imam"]
    assert body["is_super_admin"] is False
    assert body["permissions"]["can_view_complaints"] is False
    assert body["permissions"]["can_view_questions"] is True


def test_protected_route_rejects_non_member(client, authorize, make_user, make_masjid):
    masjid = make_masjid()
    authorize(make_user("Stranger"))

    resp = client.get(f"/masajids/{masjid.id}/members")
    assert resp.status_code == 403
    assert resp.json() == {"detail": "Not a member of this masjid", "code": "forbidden"}


def test_missing_masjid_is_not_found_before_permission(client, authorize, make_user):
    authorize(make_user("Stranger"))

    resp = client.get("/masajids/9999/members")
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_unauthenticated_request_is_rejected(client, make_masjid):
    masjid = make_masjid()
    resp = client.get(f"/masajids/{masjid.id}/members")
    assert resp.status_code == 401
