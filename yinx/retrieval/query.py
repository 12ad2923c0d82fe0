"""Search query with optional filters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

__all__ = ["SearchQuery"]


@dataclass
class SearchQuery:
    """Query text, result limit and optional session, tool and time filters."""

    text: str
    limit: int
    session_id: str | None = None
    tool_filter: str | None = None
    time_range: tuple[int, int] | None = None

    def __post_init__(self) -> None:
        if self.limit < 0:
            raise ValueError("limit must not be negative")
        if self.time_range is not None:
            start, end = self.time_range
            self.time_range = (int(start), int(end))

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "limit": self.limit,
            "session_id": self.session_id,
            "tool_filter": self.tool_filter,
            "time_range": None if self.time_range is None else list(self.time_range),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SearchQuery:
        try:
            time_range = data.get("time_range")
            return cls(
                text=str(data["text"]),
                limit=int(data["limit"]),
                session_id=data.get("session_id"),
                tool_filter=data.get("tool_filter"),
                time_range=None if time_range is None else tuple(time_range),
            )
        except KeyError as exc:
            raise ValueError(f"missing field `{exc.args[0]}`") from exc