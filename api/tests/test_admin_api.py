import pytest
from sqlalchemy.exc import SQLAlchemyError

from stages.main import app
from stages.models import AuditLog, Stagiaire, User
from stages.tutor_assignment import get_assignment_strategy


class BrokenStrategy:
    def choose(self, loads):
        raise SQLAlchemyError("base indisponible")


@pytest.fixture()
def admin(make_user):
    return make_user("admin", email="admin@example.com")


def _new_user(**overrides):
    body = {"email": "nouveau@example.com", "password": "secret123", "name": "Nouveau", "role": "intern"}
    body.update(overrides)
    return body


def test_admin_endpoints_reject_non_admins(client, auth, make_user):
    rh = make_user("rh")
    assert client.get("/admin/users", headers=auth(rh)).status_code == 403
    assert client.post("/admin/users", json=_new_user(), headers=auth(rh)).status_code == 403
    assert client.get("/admin/audit-logs", headers=auth(rh)).status_code == 403


def test_create_intern_with_assignment(client, auth, admin, make_user, make_assignment):
    busy = make_user("tutor")
    free = make_user("tutor")
    make_assignment(make_user("intern"), tutor=busy)

    resp = client.post("/admin/users", json=_new_user(), headers=auth(admin))
    assert resp.status_code == 201
    body = resp.json()
    assert body["data"]["role"] == "intern"
    assert body["warnings"] == []
    assert body["assignment"]["tutor_id"] == free.id
    assert body["assignment"]["company_name"] == "Bridge Technologies Solutions"


def test_create_intern_when_assignment_fails(client, db, auth, admin):
    app.dependency_overrides[get_assignment_strategy] = lambda: BrokenStrategy()

    resp = client.post("/admin/users", json=_new_user(), headers=auth(admin))

    assert resp.status_code == 201
    body = resp.json()
    assert body["assignment"] is None
    assert body["warnings"] == ["Affectation de stage non créée"]
    assert db.query(User).filter(User.email == "nouveau@example.com").count() == 1
    assert db.query(Stagiaire).count() == 0


def test_create_validation(client, auth, admin, make_user):
    make_user("tutor", email="taken@example.com")

    resp = client.post("/admin/users", json=_new_user(email="taken@example.com"), headers=auth(admin))
    assert resp.status_code == 400
    assert resp.json()["details"] == [{"field": "email", "message": "Un utilisateur avec cet email existe déjà"}]

    resp = client.post("/admin/users", json=_new_user(email="pas-un-email"), headers=auth(admin))
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "email"

    resp = client.post("/admin/users", json=_new_user(role="superuser"), headers=auth(admin))
    assert resp.status_code == 400


def test_list_and_filter_users(client, auth, admin, make_user):
    make_user("tutor")
    make_user("intern", is_active=False)

    resp = client.get("/admin/users", headers=auth(admin))
    assert resp.json()["total"] == 3

    resp = client.get("/admin/users", params={"role": "tutor"}, headers=auth(admin))
    assert [u["role"] for u in resp.json()["data"]] == ["tutor"]

    resp = client.get("/admin/users", params={"is_active": "false"}, headers=auth(admin))
    assert [u["role"] for u in resp.json()["data"]] == ["intern"]


def test_update_user(client, auth, admin, make_user):
    tutor = make_user("tutor")
    url = f"/admin/users/{tutor.id}"

    resp = client.put(url, json={"department": "Informatique", "role": "rh"}, headers=auth(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["role"] == "rh"
    assert resp.json()["data"]["department"] == "Informatique"

    resp = client.put(url, json={"is_active": False}, headers=auth(admin))
    assert resp.status_code == 200
    assert client.get("/auth/me", headers=auth(tutor)).status_code == 403

    assert client.put(url, json={"name": None}, headers=auth(admin)).status_code == 400
    assert client.get("/admin/users/unknown", headers=auth(admin)).status_code == 404


def test_admin_cannot_demote_or_disable_self(client, auth, admin):
    url = f"/admin/users/{admin.id}"
    resp = client.put(url, json={"role": "rh"}, headers=auth(admin))
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "role"

    resp = client.put(url, json={"is_active": False}, headers=auth(admin))
    assert resp.status_code == 400


def test_password_reset(client, auth, admin, make_user):
    intern = make_user("intern", email="intern@example.com")
    resp = client.put(f"/admin/users/{intern.id}", json={"password": "nouveau-mdp"}, headers=auth(admin))
    assert resp.status_code == 200

    login = client.post("/auth/login", data={"username": "intern@example.com", "password": "nouveau-mdp"})
    assert login.status_code == 200


def test_audit_logs(client, db, auth, admin):
    client.post("/admin/users", json=_new_user(role="tutor"), headers=auth(admin))
    created = db.query(User).filter(User.email == "nouveau@example.com").one()
    client.put(f"/admin/users/{created.id}", json={"phone": "0600000000"}, headers=auth(admin))

    resp = client.get("/admin/audit-logs", headers=auth(admin))
    assert resp.status_code == 200
    entries = resp.json()["data"]
    assert [e["action"] for e in entries] == ["update", "create"]
    assert all(e["user_email"] == "admin@example.com" for e in entries)
    assert entries[0]["detail"] == "phone: None -> 0600000000"

    resp = client.get("/admin/audit-logs", params={"action": "create"}, headers=auth(admin))
    assert [e["entity_id"] for e in resp.json()["data"]] == [created.id]

    assert db.query(AuditLog).count() == 2
