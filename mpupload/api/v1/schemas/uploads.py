"""Pydantic schemas for upload API endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_serializer

from mpupload.infra.storage.client import MultipartEndpoint, MultipartPlan


class MultipartPlanRequest(BaseModel):
    """Request body for planning a multipart upload."""

    path: str = Field(min_length=1, max_length=1024)
    size: int = Field(ge=1)


class MultipartEndpointOut(BaseModel):
    """How to call the next step of the upload protocol.

    Unset fields are left out of the serialized object.
    """

    expires_in: int | None = None
    href: str | None = None
    method: str | None = None
    headers: dict[str, str] | None = None
    params: dict[str, str] | None = None
    aggregation_params: dict[str, str] | None = None

    @model_serializer(mode="wrap")
    def _drop_unset(self, handler) -> dict[str, Any]:
        dumped = handler(self)
        return {key: value for key, value in dumped.items() if value is not None}

    @classmethod
    def from_endpoint(cls, endpoint: MultipartEndpoint) -> "MultipartEndpointOut":
        return cls(**endpoint.to_dict())


class MultipartPartOut(BaseModel):
    """One chunk of the object and where to PUT it."""

    index: int
    pos: int
    size: int
    endpoint: MultipartEndpointOut


class MultipartPlanOut(BaseModel):
    """Response model for a planned multipart upload."""

    upload_id: str
    parts: list[MultipartPartOut]
    abort: MultipartEndpointOut | None = None
    verify: MultipartEndpointOut

    @classmethod
    def from_plan(cls, plan: MultipartPlan) -> "MultipartPlanOut":
        return cls(
            upload_id=plan.upload_id,
            parts=[
                MultipartPartOut.model_validate(part.to_dict()) for part in plan.parts
            ],
            abort=(
                MultipartEndpointOut.from_endpoint(plan.abort) if plan.abort else None
            ),
            verify=MultipartEndpointOut.from_endpoint(plan.verify),
        )


class DownloadUrlOut(BaseModel):
    """Response model for a presigned download URL."""

    url: str
    expires_in: int
