"""
Pydantic models for the memory retrieval tools.

These models define the request/response contracts between the tool
layer (``memory_search``, ``memory_get``) and the memory manager. Field
aliases match the tool parameter names the agent sees.
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ============ SEARCH ============

class MemorySearchRequest(BaseModel):
    """Ranked search over MEMORY.md and memory/*.md."""
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, description="Search query")
    max_results: int = Field(5, ge=1, alias="maxResults", description="Maximum hits")
    min_score: float = Field(0.0, ge=0.0, alias="minScore", description="Drop hits scoring below this")


class MemorySearchHit(BaseModel):
    """One ranked chunk."""
    source_path: str = Field(..., description="Workspace-relative source file")
    snippet: str = Field(..., description="Chunk text, capped")
    score: float
    start_line: int = Field(..., ge=1)
    end_line: int = Field(..., ge=1)


class MemorySearchResponse(BaseModel):
    query: str
    results: List[MemorySearchHit] = Field(default_factory=list)


# ============ GET ============

class MemoryGetRequest(BaseModel):
    """Raw read of one memory file, optionally a line range."""
    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(..., min_length=1, description="MEMORY.md or memory/<name>.md")
    from_line: int = Field(1, ge=1, alias="from", description="1-indexed first line")
    lines: Optional[int] = Field(None, ge=1, description="Number of lines to read")


class MemoryGetResponse(BaseModel):
    path: str
    text: str
