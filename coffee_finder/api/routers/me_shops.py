from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from coffee_finder.api.deps import device_id_query, get_shop_store
from coffee_finder.schemas.common import ErrorResponse
from coffee_finder.schemas.shop_data import (
    NoteCollection,
    NoteMutationResponse,
    NoteWriteRequest,
    PhotoCollection,
    PhotoMutationResponse,
    PhotoWriteRequest,
    ShopDataExport,
    StoredShopsResponse,
)
from coffee_finder.services.shop_store import ShopStore

router = APIRouter(prefix="/me/shops", tags=["me"])

_ERRORS = {
    404: {"model": ErrorResponse, "description": "Not Found"},
    409: {"model": ErrorResponse, "description": "version conflict"},
    422: {"model": ErrorResponse, "description": "validation error"},
}
_EXPECTED_VERSION = Query(None, ge=0, description="Reject with 409 unless the stored version matches")


@router.get("", response_model=StoredShopsResponse, summary="Shops with stored notes/photos")
async def list_stored_shops(
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    return StoredShopsResponse(shop_ids=await store.stored_shop_ids(device_id))


@router.get("/{shop_id}", response_model=ShopDataExport, summary="Export a shop's data", responses=_ERRORS)
async def export_shop(
    shop_id: int,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    notes, photos = await store.export(device_id, shop_id)
    return ShopDataExport(
        shop_id=shop_id,
        notes=notes.items,
        photos=photos.items,
        notes_version=notes.version,
        photos_version=photos.version,
    )


@router.delete("/{shop_id}", status_code=204, summary="Purge a shop's notes and photos (idempotent)")
async def purge_shop(
    shop_id: int,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    await store.purge(device_id, shop_id)
    return Response(status_code=204)


# --- notes ---


@router.get("/{shop_id}/notes", response_model=NoteCollection, summary="List notes")
async def list_notes(
    shop_id: int,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    notes = await store.list_notes(device_id, shop_id)
    return NoteCollection(shop_id=shop_id, version=notes.version, items=notes.items)


@router.post(
    "/{shop_id}/notes",
    response_model=NoteMutationResponse,
    status_code=201,
    summary="Add a note",
    responses=_ERRORS,
)
async def add_note(
    shop_id: int,
    payload: NoteWriteRequest,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    note, version = await store.add_note(
        device_id, shop_id, payload.text, expected_version=payload.expected_version
    )
    return NoteMutationResponse(note=note, version=version)


@router.patch(
    "/{shop_id}/notes/{note_id}",
    response_model=NoteMutationResponse,
    summary="Edit a note",
    responses=_ERRORS,
)
async def edit_note(
    shop_id: int,
    note_id: int,
    payload: NoteWriteRequest,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    note, version = await store.edit_note(
        device_id, shop_id, note_id, payload.text, expected_version=payload.expected_version
    )
    return NoteMutationResponse(note=note, version=version)


@router.delete(
    "/{shop_id}/notes/{note_id}",
    response_model=NoteMutationResponse,
    summary="Delete a note",
    responses=_ERRORS,
)
async def delete_note(
    shop_id: int,
    note_id: int,
    expected_version: int | None = _EXPECTED_VERSION,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    note, version = await store.delete_note(
        device_id, shop_id, note_id, expected_version=expected_version
    )
    return NoteMutationResponse(note=note, version=version)


# --- photos ---


@router.get("/{shop_id}/photos", response_model=PhotoCollection, summary="List photos")
async def list_photos(
    shop_id: int,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    photos = await store.list_photos(device_id, shop_id)
    return PhotoCollection(shop_id=shop_id, version=photos.version, items=photos.items)


@router.post(
    "/{shop_id}/photos",
    response_model=PhotoMutationResponse,
    status_code=201,
    summary="Add a captured photo",
    responses=_ERRORS,
)
async def add_photo(
    shop_id: int,
    payload: PhotoWriteRequest,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    photo, version = await store.add_photo(
        device_id, shop_id, payload.image, expected_version=payload.expected_version
    )
    return PhotoMutationResponse(photo=photo, version=version)


@router.put(
    "/{shop_id}/photos/{photo_id}",
    response_model=PhotoMutationResponse,
    summary="Replace a photo with a new capture",
    responses=_ERRORS,
)
async def replace_photo(
    shop_id: int,
    photo_id: int,
    payload: PhotoWriteRequest,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    photo, version = await store.replace_photo(
        device_id, shop_id, photo_id, payload.image, expected_version=payload.expected_version
    )
    return PhotoMutationResponse(photo=photo, version=version)


@router.delete(
    "/{shop_id}/photos/{photo_id}",
    response_model=PhotoMutationResponse,
    summary="Delete a photo",
    responses=_ERRORS,
)
async def delete_photo(
    shop_id: int,
    photo_id: int,
    expected_version: int | None = _EXPECTED_VERSION,
    device_id: str = Depends(device_id_query),
    store: ShopStore = Depends(get_shop_store),
):
    photo, version = await store.delete_photo(
        device_id, shop_id, photo_id, expected_version=expected_version
    )
    return PhotoMutationResponse(photo=photo, version=version)
