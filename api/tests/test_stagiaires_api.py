import pytest


@pytest.fixture()
def setup(make_user, make_assignment):
    tutor = make_user("tutor")
    intern = make_user("intern")
    other_intern = make_user("intern")
    return {
        "admin": make_user("admin"),
        "rh": make_user("rh"),
        "tutor": tutor,
        "other_tutor": make_user("tutor"),
        "intern": intern,
        "other_intern": other_intern,
        "stagiaire": make_assignment(intern, tutor=tutor),
        "other_stagiaire": make_assignment(other_intern, tutor=None),
    }


def _ids(client, auth, user):
    resp = client.get("/interns", headers=auth(user))
    assert resp.status_code == 200
    return {s["id"] for s in resp.json()["data"]}


def test_list_is_scoped(client, auth, setup):
    mine, theirs = setup["stagiaire"].id, setup["other_stagiaire"].id
    assert _ids(client, auth, setup["rh"]) == {mine, theirs}
    assert _ids(client, auth, setup["tutor"]) == {mine}
    assert _ids(client, auth, setup["other_tutor"]) == set()
    assert _ids(client, auth, setup["intern"]) == {mine}


def test_read_single(client, auth, setup):
    url = f"/interns/{setup['stagiaire'].id}"
    assert client.get(url, headers=auth(setup["intern"])).status_code == 200
    assert client.get(url, headers=auth(setup["other_intern"])).status_code == 403
    assert client.get("/interns/unknown", headers=auth(setup["rh"])).status_code == 404


def test_tutor_updates_assignment(client, auth, setup):
    url = f"/interns/{setup['stagiaire'].id}"
    resp = client.put(url, json={"position": "Développeur stagiaire"}, headers=auth(setup["tutor"]))
    assert resp.status_code == 200
    assert resp.json()["data"]["position"] == "Développeur stagiaire"

    assert client.put(url, json={"position": "x"}, headers=auth(setup["intern"])).status_code == 403
    assert client.put(url, json={"position": "x"}, headers=auth(setup["other_tutor"])).status_code == 403


def test_only_staff_reassign_tutor(client, auth, setup):
    url = f"/interns/{setup['stagiaire'].id}"
    new_tutor = setup["other_tutor"].id

    resp = client.put(url, json={"tutor_id": new_tutor}, headers=auth(setup["tutor"]))
    assert resp.status_code == 403

    resp = client.put(url, json={"tutor_id": setup["intern"].id}, headers=auth(setup["rh"]))
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "tutor_id"

    resp = client.put(url, json={"tutor_id": new_tutor}, headers=auth(setup["rh"]))
    assert resp.status_code == 200
    assert resp.json()["data"]["tutor_id"] == new_tutor

    # l'ancien tuteur n'y a plus accès
    assert client.get(url, headers=auth(setup["tutor"])).status_code == 403


def test_dates_must_be_ordered(client, auth, setup):
    url = f"/interns/{setup['stagiaire'].id}"
    resp = client.put(url, json={"end_date": "2023-01-01"}, headers=auth(setup["rh"]))
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "end_date"


def test_invalid_status(client, auth, setup):
    url = f"/interns/{setup['stagiaire'].id}"
    resp = client.put(url, json={"status": "paused"}, headers=auth(setup["rh"]))
    assert resp.status_code == 400
