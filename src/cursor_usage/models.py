from __future__ import annotations

"""Dataclass models for dashboard payloads and the published panel snapshot."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class DisplayState(str, Enum):
    LOADING = "loading"
    OK = "ok"
    NOT_CONFIGURED = "not_configured"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class ModelUsage:
    num_requests: int
    num_tokens: int


@dataclass(slots=True, frozen=True)
class UsageSnapshot:
    models: Dict[str, ModelUsage]
    start_of_month: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "UsageSnapshot":
        """Build from the raw ``/api/usage`` body.

        Only entries that are objects carrying both ``numRequests`` and
        ``numTokens`` are models; everything else (``startOfMonth`` and
        friends) is skipped.
        """
        if not isinstance(data, Mapping):
            raise ValueError("usage payload must be a JSON object")
        models: Dict[str, ModelUsage] = {}
        for name, entry in data.items():
            if not isinstance(entry, Mapping):
                continue
            if "numRequests" not in entry or "numTokens" not in entry:
                continue
            models[name] = ModelUsage(
                num_requests=int(entry.get("numRequests") or 0),
                num_tokens=int(entry.get("numTokens") or 0),
            )
        start = data.get("startOfMonth")
        return cls(models=models, start_of_month=str(start) if start else None)

    def requests_for(self, model: str) -> int:
        usage = self.models.get(model)
        return usage.num_requests if usage else 0


@dataclass(slots=True, frozen=True)
class TeamInfo:
    id: int
    name: str

    @classmethod
    def first_of(cls, data: Mapping[str, Any]) -> Optional["TeamInfo"]:
        teams = data.get("teams") if isinstance(data, Mapping) else None
        if not teams:
            return None
        first = teams[0]
        return cls(id=first["id"], name=str(first.get("name", "")))


@dataclass(slots=True, frozen=True)
class UserAnalytics:
    apply_lines_rank: int
    total_team_members: int
    total_apply_lines: int
    team_average_apply_lines: float
    tabs_accepted_rank: int
    total_tabs_accepted: int
    team_average_tabs_accepted: float

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "UserAnalytics":
        if not isinstance(data, Mapping):
            raise ValueError("analytics payload must be a JSON object")
        return cls(
            apply_lines_rank=int(data.get("applyLinesRank") or 0),
            total_team_members=int(data.get("totalTeamMembers") or 0),
            total_apply_lines=int(data.get("totalApplyLines") or 0),
            team_average_apply_lines=float(data.get("teamAverageApplyLines") or 0),
            tabs_accepted_rank=int(data.get("tabsAcceptedRank") or 0),
            total_tabs_accepted=int(data.get("totalTabsAccepted") or 0),
            team_average_tabs_accepted=float(data.get("teamAverageTabsAccepted") or 0),
        )


@dataclass(slots=True, frozen=True)
class UserProfile:
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    updated_at: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> Optional["UserProfile"]:
        if not isinstance(data, Mapping) or not data.get("sub"):
            return None
        return cls(
            sub=str(data["sub"]),
            email=data.get("email"),
            name=data.get("name"),
            updated_at=data.get("updated_at"),
            raw=dict(data),
        )


@dataclass(slots=True, frozen=True)
class PanelSnapshot:
    """Everything the renderer needs; a fresh instance is published per change."""

    state: DisplayState
    usage: Optional[UsageSnapshot] = None
    team_info: Optional[TeamInfo] = None
    user_analytics: Optional[UserAnalytics] = None
    monthly_quota: int = 500


__all__ = [
    "DisplayState",
    "ModelUsage",
    "UsageSnapshot",
    "TeamInfo",
    "UserAnalytics",
    "UserProfile",
    "PanelSnapshot",
]
