from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SearchResult(BaseModel):
    """One candidate professional found by the search provider.

    ``contact`` travels as ``phone`` on the wire.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    contact: str = Field(..., alias="phone")
    link: str


class Message(BaseModel):
    role: Literal["user", "bot"]
    content: str
    results: Optional[List[SearchResult]] = None


class ChatReply(BaseModel):
    message: str
    results: List[SearchResult] = Field(default_factory=list)
