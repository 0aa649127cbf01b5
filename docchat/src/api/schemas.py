"""
DocChat - Request Bodies
=========================
Pydantic models for JSON request bodies.  Field aliases match the
camelCase wire format (``sessionId``); snake_case names are accepted
as well.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from docchat.src.core.memory import DEFAULT_SESSION_ID


class _SessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(DEFAULT_SESSION_ID, alias="sessionId")

    @field_validator("session_id", mode="before")
    @classmethod
    def _blank_to_default(cls, v: str | None) -> str:
        if v is None or not str(v).strip():
            return DEFAULT_SESSION_ID
        return str(v).strip()


class ChatRequest(_SessionRequest):
    message: str


class CategoryChatRequest(_SessionRequest):
    message: str
    category: str


class AddTextRequest(BaseModel):
    content: str
    title: str | None = None
    category: str | None = None
