from __future__ import annotations

from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EncryptedEnvelopeIn(BaseModel):
    # Nombres de campo genéricos a propósito: ciphertext, iv y tag
    sourceStats: str = Field(..., min_length=1)
    sourceKey: str = Field(..., min_length=1)
    sessionId: str = Field(..., min_length=1)


class EncryptedEnvelopeOut(BaseModel):
    sourceStats: str
    sourceKey: str
    sessionId: str


class RequestPayload(BaseModel):
    """Payload descifrado de una petición del cliente."""

    model_config = ConfigDict(extra="ignore")

    mediaType: Literal["movie", "tv"]
    tmdbId: Union[str, int]
    seasonId: Optional[Union[str, int]] = None
    episodeId: Optional[Union[str, int]] = None
    timestamp: Union[int, float]
    token: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _tv_requires_episode(self) -> "RequestPayload":
        if self.mediaType == "tv" and (self.seasonId in (None, "") or self.episodeId in (None, "")):
            raise ValueError("seasonId and episodeId are required for tv requests")
        return self


class SourceIn(BaseModel):
    originalName: str = Field(..., min_length=1, max_length=255)
    natoName: Optional[str] = None
    isGrouped: bool = False
    enabled: bool = True


class SourceUpdateIn(BaseModel):
    originalName: Optional[str] = Field(default=None, min_length=1, max_length=255)
    natoName: Optional[str] = None
    isGrouped: Optional[bool] = None
    enabled: Optional[bool] = None


class SourceOut(BaseModel):
    id: int
    originalName: str
    natoName: str
    isGrouped: bool
    enabled: bool
    createdAt: int
    updatedAt: int


class AliasUpdateIn(BaseModel):
    id: int
    natoName: str = Field(..., min_length=1)


class ReorderIn(BaseModel):
    updates: List[AliasUpdateIn] = Field(default_factory=list)


class ServerSelectionIn(BaseModel):
    serverName: str = Field(..., min_length=1)
    successful: Optional[bool] = None
    data: Optional[dict[str, Any]] = None


class ServerSelectionOut(BaseModel):
    success: bool
    message: str
    serverName: str
    timestamp: int
