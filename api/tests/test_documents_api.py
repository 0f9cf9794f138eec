import pytest
from sqlalchemy.exc import OperationalError

from stages.config import settings
from stages.models import Document


def _upload(client, auth, user, name="cv.pdf", content=b"%PDF-1.4 test", **form):
    data = {"type": "cv", "is_public": "false"}
    data.update(form)
    return client.post(
        "/documents",
        files={"file": (name, content, "application/pdf")},
        data=data,
        headers=auth(user),
    )


def test_upload_and_download(client, auth, make_user, blob_store):
    intern = make_user("intern")
    resp = _upload(client, auth, intern)
    assert resp.status_code == 201
    doc = resp.json()["data"]
    assert doc["owner_id"] == intern.id
    assert doc["size_bytes"] == len(b"%PDF-1.4 test")
    assert doc["is_public"] is False

    resp = client.get(f"/documents/{doc['id']}/download", headers=auth(intern))
    assert resp.status_code == 200
    assert resp.content == b"%PDF-1.4 test"
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.headers["content-disposition"].startswith('attachment; filename="cv.pdf"')
    assert "Content-Disposition" in resp.headers["access-control-expose-headers"]


def test_download_non_ascii_name(client, auth, make_user):
    intern = make_user("intern")
    doc_id = _upload(client, auth, intern, name="relevé.pdf").json()["data"]["id"]

    resp = client.get(f"/documents/{doc_id}/download", headers=auth(intern))
    assert resp.status_code == 200
    assert resp.headers["content-disposition"] == (
        "attachment; filename=\"relev_.pdf\"; filename*=UTF-8''relev%C3%A9.pdf"
    )


def test_private_document_visibility(client, auth, make_user):
    owner = make_user("intern")
    other = make_user("intern")
    rh = make_user("rh")
    tutor = make_user("tutor")

    private_id = _upload(client, auth, owner, name="private.pdf").json()["data"]["id"]
    public_id = _upload(client, auth, owner, name="public.pdf", is_public="true").json()["data"]["id"]

    def listed(user):
        return {d["id"] for d in client.get("/documents", headers=auth(user)).json()["data"]}

    assert listed(owner) == {private_id, public_id}
    assert listed(other) == {public_id}
    assert listed(tutor) == {public_id}
    assert listed(rh) == {private_id, public_id}

    assert client.get(f"/documents/{private_id}/download", headers=auth(other)).status_code == 403
    assert client.get(f"/documents/{private_id}/download", headers=auth(rh)).status_code == 200
    assert client.get(f"/documents/{public_id}/download", headers=auth(other)).status_code == 200


def test_list_is_newest_first(client, auth, make_user):
    intern = make_user("intern")
    first = _upload(client, auth, intern, name="a.pdf").json()["data"]["id"]
    second = _upload(client, auth, intern, name="b.pdf").json()["data"]["id"]
    data = client.get("/documents", headers=auth(intern)).json()["data"]
    assert [d["id"] for d in data] == [second, first]


def test_empty_file_is_rejected(client, auth, make_user):
    resp = _upload(client, auth, make_user("intern"), content=b"")
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "file"


def test_too_large_file_is_rejected(client, auth, make_user, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 0)
    resp = _upload(client, auth, make_user("intern"))
    assert resp.status_code == 400
    assert "trop volumineux" in resp.json()["error"]


def test_upload_to_unknown_request(client, auth, make_user):
    resp = _upload(client, auth, make_user("intern"), demande_id="nope")
    assert resp.status_code == 404


def test_download_missing_blob(client, db, auth, make_user):
    intern = make_user("intern")
    doc = Document(name="lost.pdf", storage_path=f"{intern.id}/0_lost.pdf", owner_id=intern.id, size_bytes=3)
    db.add(doc)
    db.commit()

    resp = client.get(f"/documents/{doc.id}/download", headers=auth(intern))
    assert resp.status_code == 404
    assert resp.json()["code"] == "blob_not_found"


def test_unknown_document(client, auth, make_user):
    resp = client.get("/documents/unknown/download", headers=auth(make_user("rh")))
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_blob_removed_when_insert_fails(client, auth, make_user, blob_store, monkeypatch, tmp_path):
    intern = make_user("intern")

    def failing_commit(self):
        raise OperationalError("INSERT INTO documents", {}, Exception("disque plein"))

    monkeypatch.setattr("sqlalchemy.orm.Session.commit", failing_commit)
    resp = _upload(client, auth, intern)

    assert resp.status_code == 500
    assert resp.json()["code"] == "store_error"
    owner_dir = tmp_path / "blobs" / intern.id
    assert not owner_dir.exists() or not any(owner_dir.iterdir())


@pytest.mark.parametrize("path", ["/documents", "/documents/x/download"])
def test_requires_authentication(client, path):
    assert client.get(path).status_code == 401


def test_same_name_uploads_in_same_millisecond(client, auth, make_user, monkeypatch):
    intern = make_user("intern")
    monkeypatch.setattr("stages.utils.time.time", lambda: 1700000000.0)

    first = _upload(client, auth, intern, name="a.pdf")
    second = _upload(client, auth, intern, name="a.pdf")

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["data"]["id"] != second.json()["data"]["id"]


def test_storage_failure_is_opaque(client, auth, make_user, monkeypatch):
    intern = make_user("intern")
    fixed_path = f"{intern.id}/1700000000000_a.pdf"
    monkeypatch.setattr("stages.routers_documents.build_storage_path", lambda owner, name: fixed_path)

    assert _upload(client, auth, intern, name="a.pdf").status_code == 201
    resp = _upload(client, auth, intern, name="a.pdf")

    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "storage_error"
    assert body["error"] == "Erreur de stockage"
    assert fixed_path not in resp.text
    assert intern.id not in resp.text
