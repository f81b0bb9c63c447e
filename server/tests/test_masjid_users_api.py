from __future__ import annotations

from app.models.membership import MasjidMembership
from app.services import permissions


def _admin_count(db_session, masjid_id: int) -> int:
    db_session.expire_all()
    return permissions.count_admins(db_session, masjid_id)


def test_add_member_seeds_role_defaults(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    imam = make_user("Imam")
    add_membership(admin, masjid, "admin")

    authorize(admin)
    resp = client.post(f"/masajids/{masjid.id}/users", json={"user_id": imam.id, "role": "imam"})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["role"] == "imam"
    assert body["can_answer_complaints"] is False
    assert body["can_change_prayer_times"] is True
    assert body["assigned_by_id"] == admin.id
    assert body["is_default"] is True


def test_add_member_applies_overrides_and_rejects_duplicates(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    imam = make_user("Imam")
    add_membership(admin, masjid, "admin")

    authorize(admin)
    payload = {"user_id": imam.id, "role": "imam", "can_create_events": False}
    first = client.post(f"/masajids/{masjid.id}/users", json=payload)
    assert first.status_code == 201
    assert first.json()["can_create_events"] is False

    duplicate = client.post(f"/masajids/{masjid.id}/users", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "User is already imam of this masjid"

    # The same user may hold the other role as a separate row.
    second_role = client.post(f"/masajids/{masjid.id}/users", json={"user_id": imam.id, "role": "admin"})
    assert second_role.status_code == 201


def test_add_member_requires_admin_role(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    imam = make_user("Imam")
    newcomer = make_user("Newcomer")
    add_membership(imam, masjid, "imam")

    authorize(imam)
    resp = client.post(f"/masajids/{masjid.id}/users", json={"user_id": newcomer.id, "role": "imam"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Only masjid admins can manage users"


def test_self_guards_run_before_permission_checks(client, authorize, make_user, make_masjid):
    masjid = make_masjid()
    outsider = make_user("Outsider")

    authorize(outsider)
    add_self = client.post(f"/masajids/{masjid.id}/users", json={"user_id": outsider.id, "role": "admin"})
    assert add_self.status_code == 403
    assert add_self.json()["detail"] == "You cannot add yourself to a masjid"

    change_self = client.put(f"/masajids/{masjid.id}/users/{outsider.id}/role", json={"role": "imam"})
    assert change_self.status_code == 403
    assert change_self.json()["detail"] == "You cannot modify your own role"

    remove_self = client.delete(f"/masajids/{masjid.id}/users/{outsider.id}")
    assert remove_self.status_code == 403
    assert remove_self.json()["detail"].startswith("You cannot remove yourself from a masjid")


def test_last_admin_cannot_be_demoted_or_removed(client, authorize, db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    root = make_user("Root", is_super_admin=True)
    admin = make_user("Only Admin")
    add_membership(admin, masjid, "admin")

    authorize(root)
    demote = client.put(f"/masajids/{masjid.id}/users/{admin.id}/role", json={"role": "imam"})
    assert demote.status_code == 403
    assert demote.json()["detail"] == "Cannot change role of the last admin"

    remove = client.delete(f"/masajids/{masjid.id}/users/{admin.id}")
    assert remove.status_code == 403
    assert remove.json()["detail"] == "Cannot remove the last admin. Please add another admin first."

    remove_role = client.delete(f"/masajids/{masjid.id}/users/{admin.id}/roles/admin")
    assert remove_role.status_code == 403

    assert _admin_count(db_session, masjid.id) == 1


def test_demoting_one_of_two_admins_leaves_exactly_one(client, authorize, db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    first = make_user("First Admin")
    second = make_user("Second Admin")
    add_membership(first, masjid, "admin")
    add_membership(second, masjid, "admin", can_create_events=False)

    authorize(first)
    resp = client.put(f"/masajids/{masjid.id}/users/{second.id}/role", json={"role": "imam"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["role"] == "imam"
    # Capability bits travel with the row.
    assert body["can_create_events"] is False
    assert _admin_count(db_session, masjid.id) == 1

    authorize(second)
    back = client.put(f"/masajids/{masjid.id}/users/{first.id}/role", json={"role": "imam"})
    assert back.status_code == 403


def test_change_role_conflict_when_role_already_held(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    imam = make_user("Imam")
    add_membership(admin, masjid, "admin")
    add_membership(imam, masjid, "imam")

    authorize(admin)
    resp = client.put(f"/masajids/{masjid.id}/users/{imam.id}/role", json={"role": "imam"})
    assert resp.status_code == 409


def test_update_capabilities(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    imam = make_user("Imam")
    add_membership(admin, masjid, "admin")
    add_membership(imam, masjid, "imam")

    authorize(admin)
    resp = client.put(
        f"/masajids/{masjid.id}/users/{imam.id}/permissions",
        json={"role": "imam", "can_view_complaints": True, "can_change_prayer_times": False},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["can_view_complaints"] is True
    assert body["can_change_prayer_times"] is False
    assert body["can_view_questions"] is True

    authorize(imam)
    own = client.put(
        f"/masajids/{masjid.id}/users/{imam.id}/permissions",
        json={"role": "imam", "can_change_prayer_times": True},
    )
    assert own.status_code == 403


def test_remove_member_deletes_every_role_row(client, authorize, db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    member = make_user("Dual")
    add_membership(admin, masjid, "admin")
    add_membership(member, masjid, "imam")
    add_membership(member, masjid, "admin")

    authorize(admin)
    resp = client.delete(f"/masajids/{masjid.id}/users/{member.id}")
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"user_id": member.id, "removed": 2}

    db_session.expire_all()
    remaining = db_session.query(MasjidMembership).filter_by(user_id=member.id, masjid_id=masjid.id).count()
    assert remaining == 0


def test_remove_single_role(client, authorize, db_session, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    member = make_user("Dual")
    add_membership(admin, masjid, "admin")
    add_membership(member, masjid, "imam")
    add_membership(member, masjid, "admin")

    authorize(admin)
    resp = client.delete(f"/masajids/{masjid.id}/users/{member.id}/roles/imam")
    assert resp.status_code == 204

    db_session.expire_all()
    roles = [row.role for row in db_session.query(MasjidMembership).filter_by(user_id=member.id).all()]
    assert roles == ["admin"]


def test_imam_and_admin_listings(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    admin = make_user("Admin")
    imam = make_user("Imam")
    add_membership(admin, masjid, "admin")
    add_membership(imam, masjid, "imam")

    authorize(imam)
    imams = client.get(f"/masajids/{masjid.id}/imams")
    admins = client.get(f"/masajids/{masjid.id}/admins")
    assert [row["user_id"] for row in imams.json()] == [imam.id]
    assert [row["user_id"] for row in admins.json()] == [admin.id]

    members = client.get(f"/masajids/{masjid.id}/members")
    assert members.status_code == 200
    assert {row["user"]["full_name"] for row in members.json()} == {"Admin", "Imam"}
