from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

DEVICE_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


class Note(BaseModel):
    id: int = Field(description="Note id, unique within the shop")
    text: str = Field(description="Note body")
    date: str = Field(description="Creation timestamp (ISO8601, UTC)")
    edited: str | None = Field(default=None, description="Last edit timestamp (ISO8601, UTC)")


class Photo(BaseModel):
    id: int = Field(description="Photo id, unique within the shop")
    url: str = Field(description="Inline image as a base64 data URL")
    date: str = Field(description="Creation timestamp (ISO8601, UTC)")
    edited: str | None = Field(default=None, description="Last replacement timestamp")


class NoteCollection(BaseModel):
    shop_id: int
    version: int = Field(description="Optimistic concurrency token (0 = nothing stored)")
    items: list[Note]


class PhotoCollection(BaseModel):
    shop_id: int
    version: int = Field(description="Optimistic concurrency token (0 = nothing stored)")
    items: list[Photo]


class NoteWriteRequest(BaseModel):
    text: str = Field(min_length=1, max_length=10_000, description="Note body")
    expected_version: int | None = Field(
        default=None, ge=0, description="Reject the write with 409 unless the stored version matches"
    )

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value


class PhotoWriteRequest(BaseModel):
    image: str = Field(
        min_length=1,
        description="Captured image as a data URL (data:image/jpeg;base64,...) or bare base64",
    )
    expected_version: int | None = Field(default=None, ge=0)


class NoteMutationResponse(BaseModel):
    note: Note
    version: int


class PhotoMutationResponse(BaseModel):
    photo: Photo
    version: int


class ShopDataExport(BaseModel):
    shop_id: int
    notes: list[Note]
    photos: list[Photo]
    notes_version: int
    photos_version: int


class StoredShopsResponse(BaseModel):
    shop_ids: list[int]
