"""Decoding of client-submitted multipart completion payloads.

Clients echo back the ``upload_id`` from the verify descriptor and collect
one ``{"index", "etag"}`` pair per uploaded chunk under ``part_ids``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from mpupload.infra.storage.client import CommitPayload, DecodeError, MultipartPartID


class _PartIDModel(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    index: int = Field(ge=1)
    etag: str = Field(min_length=1)


class _CommitPayloadModel(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    upload_id: str = Field(min_length=1)
    part_ids: list[_PartIDModel] = Field(min_length=1)

    @field_validator("part_ids")
    @classmethod
    def _unique_indices(cls, value: list[_PartIDModel]) -> list[_PartIDModel]:
        seen: set[int] = set()
        for part in value:
            if part.index in seen:
                raise ValueError(f"duplicate part index {part.index}")
            seen.add(part.index)
        return value


def _describe(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "<root>"
        problems.append(f"{location}: {error.get('msg')}")
    return "; ".join(problems)


def decode_commit_payload(raw: bytes | str) -> CommitPayload:
    """Decode a raw JSON completion payload.

    Args:
        raw: JSON document of the form
            ``{"upload_id": str, "part_ids": [{"etag": str, "index": int}]}``.

    Returns:
        CommitPayload with part ids in the order the client sent them.

    Raises:
        DecodeError: If the payload is not valid JSON, misses ``upload_id``,
            has a non-array or empty ``part_ids``, or repeats an index.
    """
    if raw is None or (isinstance(raw, (bytes, str)) and not raw.strip()):
        raise DecodeError("Commit payload is empty")
    try:
        model = _CommitPayloadModel.model_validate_json(raw)
    except ValidationError as exc:
        raise DecodeError(f"Invalid commit payload: {_describe(exc)}") from exc

    return CommitPayload(
        upload_id=model.upload_id,
        part_ids=tuple(
            MultipartPartID(index=part.index, etag=part.etag)
            for part in model.part_ids
        ),
    )
