import pytest

from bagami.core.config import settings
from tests.conftest import auth_headers


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path))
    return tmp_path


async def _upload(client, user, document_type, **images):
    files = {name: (f"{name}.jpg", content, "image/jpeg") for name, content in images.items()}
    return await client.post(
        "/api/id-documents", data={"documentType": document_type}, files=files, headers=auth_headers(user)
    )


async def test_passport_upload(client, make_user, upload_dir):
    user = await make_user()
    response = await _upload(client, user, "passport", frontImage=b"\xff\xd8 fake")
    assert response.status_code == 201
    document = response.json()["document"]
    assert document["verificationStatus"] == "pending"
    assert list((upload_dir / "id-documents").iterdir())


async def test_national_id_requires_both_sides(client, make_user):
    user = await make_user()
    response = await _upload(client, user, "national_id", frontImage=b"front")
    assert response.status_code == 400


async def test_new_upload_replaces_previous(client, make_user, upload_dir):
    user = await make_user()
    await _upload(client, user, "passport", frontImage=b"first")
    await _upload(client, user, "passport", frontImage=b"second")

    listing = (await client.get("/api/id-documents", headers=auth_headers(user))).json()
    assert len(listing["documents"]) == 1
    assert listing["isVerified"] is False
    assert len(list((upload_dir / "id-documents").iterdir())) == 1
