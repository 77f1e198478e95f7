"""Per-shop notes and photos kept in the device-scoped key/value store.

Each shop owns two independent keys, ``shop_<id>_notes`` and ``shop_<id>_photos``. Every
mutation reads the whole collection, transforms it in memory and writes the whole
collection back; the write is guarded by the version read in the same unit of work.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from coffee_finder.core.exceptions import (
    ConflictError,
    NotFoundError,
    StorageCorruptedError,
    ValidationError,
)
from coffee_finder.infra.unit_of_work import UnitOfWork
from coffee_finder.schemas.shop_data import Note, Photo
from coffee_finder.utils.datetime import epoch_ms, iso_utc, utcnow

logger = structlog.get_logger(__name__)

UnitOfWorkFactory = Callable[[], UnitOfWork]
ItemT = TypeVar("ItemT", Note, Photo)

NOTES = "notes"
PHOTOS = "photos"
_KEY_RE = re.compile(r"^shop_(-?\d+)_(notes|photos)$")
_DATA_URL_RE = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,(.*)$", re.DOTALL)


def shop_key(shop_id: int, kind: str) -> str:
    if kind not in (NOTES, PHOTOS):
        raise ValueError(f"unknown collection kind: {kind}")
    return f"shop_{int(shop_id)}_{kind}"


def next_item_id(existing: Sequence[Note] | Sequence[Photo], now: datetime) -> int:
    """Timestamp-derived id that is strictly greater than every id in ``existing``."""
    highest = max((int(item.id) for item in existing), default=0)
    return max(epoch_ms(now), highest + 1)


def normalize_image(image: str) -> str:
    """Return ``image`` as a base64 data URL, validating the payload."""
    raw = image.strip()
    match = _DATA_URL_RE.match(raw)
    if match:
        mime, payload = match.group(1), match.group(2)
    else:
        mime, payload = "image/jpeg", raw
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("image is not valid base64") from exc
    if not decoded:
        raise ValidationError("image is empty")
    return f"data:{mime};base64,{payload}"


@dataclass
class Collection(Generic[ItemT]):
    items: list[ItemT]
    version: int


def _decode(key: str, raw: str | None, model: type[ItemT]) -> list[ItemT]:
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageCorruptedError(key, "invalid JSON") from exc
    if not isinstance(data, list):
        raise StorageCorruptedError(key, "expected a JSON array")
    try:
        return [model.model_validate(item) for item in data]
    except PydanticValidationError as exc:
        raise StorageCorruptedError(key, "unexpected item shape") from exc


def _encode(items: Sequence[BaseModel]) -> str:
    return json.dumps([item.model_dump(exclude_none=True) for item in items], ensure_ascii=False)


class ShopStore:
    """Use cases for reading and mutating the notes/photos of one shop."""

    def __init__(
        self, uow_factory: UnitOfWorkFactory, *, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock

    # --- generic read / read-modify-write ---

    async def _read(
        self, uow: UnitOfWork, device_id: str, key: str, model: type[ItemT]
    ) -> Collection[ItemT]:
        stored = await uow.kv.get(device_id, key)
        if stored is None:
            return Collection(items=[], version=0)
        return Collection(items=_decode(key, stored.value, model), version=stored.version)

    async def _mutate(
        self,
        device_id: str,
        key: str,
        model: type[ItemT],
        transform: Callable[[list[ItemT]], tuple[list[ItemT], ItemT]],
        expected_version: int | None,
    ) -> tuple[ItemT, int]:
        async with self._uow_factory() as uow:
            current = await self._read(uow, device_id, key, model)
            if expected_version is not None and expected_version != current.version:
                raise ConflictError(
                    f"{key} is at version {current.version}, expected {expected_version}"
                )
            items, affected = transform(list(current.items))
            version = await uow.kv.put(
                device_id, key, _encode(items), expected_version=current.version
            )
        logger.info("shop_data_written", key=key, items=len(items), version=version)
        return affected, version

    # --- notes ---

    async def list_notes(self, device_id: str, shop_id: int) -> Collection[Note]:
        async with self._uow_factory() as uow:
            return await self._read(uow, device_id, shop_key(shop_id, NOTES), Note)

    async def add_note(
        self, device_id: str, shop_id: int, text: str, *, expected_version: int | None = None
    ) -> tuple[Note, int]:
        if not text or not text.strip():
            raise ValidationError("note text must not be blank")
        now = self._clock()

        def _append(notes: list[Note]) -> tuple[list[Note], Note]:
            note = Note(id=next_item_id(notes, now), text=text, date=iso_utc(now))
            return notes + [note], note

        return await self._mutate(
            device_id, shop_key(shop_id, NOTES), Note, _append, expected_version
        )

    async def edit_note(
        self,
        device_id: str,
        shop_id: int,
        note_id: int,
        text: str,
        *,
        expected_version: int | None = None,
    ) -> tuple[Note, int]:
        if not text or not text.strip():
            raise ValidationError("note text must not be blank")
        now = self._clock()

        def _edit(notes: list[Note]) -> tuple[list[Note], Note]:
            for index, note in enumerate(notes):
                if note.id == note_id:
                    edited = note.model_copy(update={"text": text, "edited": iso_utc(now)})
                    notes[index] = edited
                    return notes, edited
            raise NotFoundError(f"note {note_id} not found")

        return await self._mutate(
            device_id, shop_key(shop_id, NOTES), Note, _edit, expected_version
        )

    async def delete_note(
        self,
        device_id: str,
        shop_id: int,
        note_id: int,
        *,
        expected_version: int | None = None,
    ) -> tuple[Note, int]:
        return await self._mutate(
            device_id,
            shop_key(shop_id, NOTES),
            Note,
            _remover(note_id, "note"),
            expected_version,
        )

    # --- photos ---

    async def list_photos(self, device_id: str, shop_id: int) -> Collection[Photo]:
        async with self._uow_factory() as uow:
            return await self._read(uow, device_id, shop_key(shop_id, PHOTOS), Photo)

    async def add_photo(
        self, device_id: str, shop_id: int, image: str, *, expected_version: int | None = None
    ) -> tuple[Photo, int]:
        url = normalize_image(image)
        now = self._clock()

        def _append(photos: list[Photo]) -> tuple[list[Photo], Photo]:
            photo = Photo(id=next_item_id(photos, now), url=url, date=iso_utc(now))
            return photos + [photo], photo

        return await self._mutate(
            device_id, shop_key(shop_id, PHOTOS), Photo, _append, expected_version
        )

    async def replace_photo(
        self,
        device_id: str,
        shop_id: int,
        photo_id: int,
        image: str,
        *,
        expected_version: int | None = None,
    ) -> tuple[Photo, int]:
        url = normalize_image(image)
        now = self._clock()

        def _replace(photos: list[Photo]) -> tuple[list[Photo], Photo]:
            for index, photo in enumerate(photos):
                if photo.id == photo_id:
                    replaced = photo.model_copy(update={"url": url, "edited": iso_utc(now)})
                    photos[index] = replaced
                    return photos, replaced
            raise NotFoundError(f"photo {photo_id} not found")

        return await self._mutate(
            device_id, shop_key(shop_id, PHOTOS), Photo, _replace, expected_version
        )

    async def delete_photo(
        self,
        device_id: str,
        shop_id: int,
        photo_id: int,
        *,
        expected_version: int | None = None,
    ) -> tuple[Photo, int]:
        return await self._mutate(
            device_id,
            shop_key(shop_id, PHOTOS),
            Photo,
            _remover(photo_id, "photo"),
            expected_version,
        )

    # --- housekeeping ---

    async def attach(
        self, device_id: str, shop_ids: Sequence[int]
    ) -> dict[int, tuple[list[Note], list[Photo]]]:
        """Load notes and photos for several shops in one unit of work."""
        out: dict[int, tuple[list[Note], list[Photo]]] = {}
        async with self._uow_factory() as uow:
            for shop_id in shop_ids:
                notes = await self._read(uow, device_id, shop_key(shop_id, NOTES), Note)
                photos = await self._read(uow, device_id, shop_key(shop_id, PHOTOS), Photo)
                out[shop_id] = (notes.items, photos.items)
        return out

    async def stored_shop_ids(self, device_id: str) -> list[int]:
        async with self._uow_factory() as uow:
            keys = await uow.kv.keys(device_id, prefix="shop_")
        ids = {int(m.group(1)) for m in (_KEY_RE.match(k) for k in keys) if m}
        return sorted(ids)

    async def export(
        self, device_id: str, shop_id: int
    ) -> tuple[Collection[Note], Collection[Photo]]:
        async with self._uow_factory() as uow:
            notes = await self._read(uow, device_id, shop_key(shop_id, NOTES), Note)
            photos = await self._read(uow, device_id, shop_key(shop_id, PHOTOS), Photo)
        if notes.version == 0 and photos.version == 0:
            raise NotFoundError(f"no stored data for shop {shop_id}")
        return notes, photos

    async def purge(self, device_id: str, shop_id: int) -> bool:
        async with self._uow_factory() as uow:
            removed_notes = await uow.kv.delete(device_id, shop_key(shop_id, NOTES))
            removed_photos = await uow.kv.delete(device_id, shop_key(shop_id, PHOTOS))
        removed = removed_notes or removed_photos
        logger.info("shop_data_purged", shop_id=shop_id, removed=removed)
        return removed


def _remover(item_id: int, label: str) -> Callable[[list[ItemT]], tuple[list[ItemT], ItemT]]:
    def _remove(items: list[ItemT]) -> tuple[list[ItemT], ItemT]:
        for index, item in enumerate(items):
            if item.id == item_id:
                return items[:index] + items[index + 1 :], item
        raise NotFoundError(f"{label} {item_id} not found")

    return _remove
