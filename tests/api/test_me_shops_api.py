from __future__ import annotations

import base64

import pytest
from httpx import AsyncClient

DEVICE = {"device_id": "device-0001"}
IMAGE = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8captured").decode()


@pytest.mark.asyncio
async def test_note_lifecycle(app_client: AsyncClient):
    r1 = await app_client.post("/me/shops/12345/notes", params=DEVICE, json={"text": "Great espresso"})
    assert r1.status_code == 201, r1.text
    note = r1.json()["note"]
    assert note["text"] == "Great espresso"
    assert note["date"]
    assert r1.json()["version"] == 1

    r2 = await app_client.patch(
        f"/me/shops/12345/notes/{note['id']}", params=DEVICE, json={"text": "Great cortado"}
    )
    assert r2.status_code == 200
    assert r2.json()["note"]["edited"]

    r3 = await app_client.get("/me/shops/12345/notes", params=DEVICE)
    assert r3.status_code == 200
    listing = r3.json()
    assert listing["version"] == 2
    assert [n["text"] for n in listing["items"]] == ["Great cortado"]

    r4 = await app_client.delete(f"/me/shops/12345/notes/{note['id']}", params=DEVICE)
    assert r4.status_code == 200
    r5 = await app_client.get("/me/shops/12345/notes", params=DEVICE)
    assert r5.json()["items"] == []


@pytest.mark.asyncio
async def test_unknown_note_is_404(app_client: AsyncClient):
    r = await app_client.delete("/me/shops/1/notes/123", params=DEVICE)
    assert r.status_code == 404
    assert r.json() == {"detail": "note 123 not found"}


@pytest.mark.asyncio
async def test_stale_version_is_409(app_client: AsyncClient):
    await app_client.post("/me/shops/5/notes", params=DEVICE, json={"text": "one"})
    await app_client.post("/me/shops/5/notes", params=DEVICE, json={"text": "two"})

    r = await app_client.post(
        "/me/shops/5/notes", params=DEVICE, json={"text": "three", "expected_version": 1}
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_blank_note_is_rejected(app_client: AsyncClient):
    r = await app_client.post("/me/shops/5/notes", params=DEVICE, json={"text": "   "})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_device_id_validation(app_client: AsyncClient):
    for bad in ["short", "bad$symbol", "white space"]:
        r = await app_client.get("/me/shops/1/notes", params={"device_id": bad})
        assert r.status_code == 422


@pytest.mark.asyncio
async def test_photo_lifecycle(app_client: AsyncClient):
    r1 = await app_client.post("/me/shops/9/photos", params=DEVICE, json={"image": IMAGE})
    assert r1.status_code == 201, r1.text
    photo = r1.json()["photo"]
    assert photo["url"] == IMAGE

    replacement = base64.b64encode(b"retake").decode()
    r2 = await app_client.put(
        f"/me/shops/9/photos/{photo['id']}", params=DEVICE, json={"image": replacement}
    )
    assert r2.status_code == 200
    assert r2.json()["photo"]["url"] == f"data:image/jpeg;base64,{replacement}"

    r3 = await app_client.delete(f"/me/shops/9/photos/{photo['id']}", params=DEVICE)
    assert r3.status_code == 200
    r4 = await app_client.get("/me/shops/9/photos", params=DEVICE)
    assert r4.json()["items"] == []


@pytest.mark.asyncio
async def test_invalid_image_is_400(app_client: AsyncClient):
    r = await app_client.post("/me/shops/9/photos", params=DEVICE, json={"image": "%%%"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_export_list_and_purge(app_client: AsyncClient):
    await app_client.post("/me/shops/21/notes", params=DEVICE, json={"text": "keep"})
    await app_client.post("/me/shops/34/photos", params=DEVICE, json={"image": IMAGE})

    listed = await app_client.get("/me/shops", params=DEVICE)
    assert listed.json() == {"shop_ids": [21, 34]}

    exported = await app_client.get("/me/shops/21", params=DEVICE)
    assert exported.status_code == 200
    assert [n["text"] for n in exported.json()["notes"]] == ["keep"]
    assert exported.json()["photos_version"] == 0

    purged = await app_client.delete("/me/shops/21", params=DEVICE)
    assert purged.status_code == 204
    again = await app_client.delete("/me/shops/21", params=DEVICE)
    assert again.status_code == 204

    missing = await app_client.get("/me/shops/21", params=DEVICE)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_corrupted_storage_is_500_with_detail(app_client: AsyncClient, uow_factory):
    async with uow_factory() as uow:
        await uow.kv.put("device-0001", "shop_3_photos", "[{\"id\": \"x\"")

    r = await app_client.get("/me/shops/3/photos", params=DEVICE)
    assert r.status_code == 500
    assert "shop_3_photos" in r.json()["detail"]
