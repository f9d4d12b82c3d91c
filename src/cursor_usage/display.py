from __future__ import annotations

"""Pure formatting helpers shared by the tray menu and tests."""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from .models import DisplayState, PanelSnapshot, TeamInfo, UserAnalytics, UsageSnapshot
from .settings_store import DEFAULT_MONTHLY_QUOTA

PREMIUM_MODEL = "gpt-4"

# (minimum remaining percent, tier) checked top to bottom
ICON_TIERS = (
    (90, "100"),
    (80, "90"),
    (70, "80"),
    (60, "70"),
    (50, "60"),
    (40, "50"),
    (30, "40"),
    (20, "30"),
    (10, "low"),
)
ICON_TIER_EMPTY = "action"


@dataclass(slots=True, frozen=True)
class QuotaSummary:
    num_requests: int
    monthly_quota: int
    used_percent: int
    remaining_percent: int
    icon_tier: str


@dataclass(slots=True, frozen=True)
class ResetCycle:
    start: datetime
    next_reset: datetime
    days_passed: int
    total_days: int
    days_passed_percent: int


def icon_tier(remaining_percent: int) -> str:
    for threshold, tier in ICON_TIERS:
        if remaining_percent >= threshold:
            return tier
    return ICON_TIER_EMPTY


def summarize_quota(usage: UsageSnapshot | None, monthly_quota: int) -> QuotaSummary:
    quota = monthly_quota if monthly_quota and monthly_quota > 0 else DEFAULT_MONTHLY_QUOTA
    n = usage.requests_for(PREMIUM_MODEL) if usage else 0
    used = (n * 100) // quota
    remaining = ((quota - n) * 100) // quota
    return QuotaSummary(
        num_requests=n,
        monthly_quota=quota,
        used_percent=used,
        remaining_percent=remaining,
        icon_tier=icon_tier(remaining),
    )


def format_rfc3339(dt: datetime) -> str:
    """Local time, second precision, numeric offset (``2025-01-09T09:00:00+08:00``)."""
    return dt.astimezone().replace(microsecond=0).isoformat()


def _add_month(dt: datetime) -> datetime:
    year = dt.year + (1 if dt.month == 12 else 0)
    month = 1 if dt.month == 12 else dt.month + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def reset_cycle(start_of_month: str, now: Optional[datetime] = None) -> ResetCycle:
    start = parse_iso(start_of_month).astimezone()
    now = (now or datetime.now().astimezone()).astimezone()
    next_reset = _add_month(start)
    day = timedelta(days=1)
    days_passed = (now - start) // day + 1
    total_days = (next_reset - start) // day
    percent = (days_passed * 100) // total_days if total_days else 0
    return ResetCycle(
        start=start,
        next_reset=next_reset,
        days_passed=days_passed,
        total_days=total_days,
        days_passed_percent=percent,
    )


def panel_title(snapshot: PanelSnapshot) -> str:
    if snapshot.state is DisplayState.UNAUTHORIZED:
        return "Unauthorized"
    if snapshot.state is DisplayState.ERROR:
        return "Error"
    if snapshot.state is DisplayState.NOT_CONFIGURED:
        return "Not configured"
    if snapshot.usage is None:
        return "Loading..."
    return f"GPT-4: {snapshot.usage.requests_for(PREMIUM_MODEL)}"


def model_copy_text(model: str, num_requests: int, num_tokens: int) -> str:
    return f"Model: {model}\nRequests: {num_requests}\nTokens: {num_tokens}"


def _num(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def ranking_lines(team: TeamInfo | None, analytics: UserAnalytics | None) -> List[str]:
    """Lines for the ranking block; empty when either half is missing."""
    if team is None or analytics is None:
        return []
    a = analytics
    return [
        f"Lines of Code Accepted Ranking: {a.apply_lines_rank} of {a.total_team_members}",
        f"Your Total Lines of Code Accepted: {_num(a.total_apply_lines)}\n"
        f"Team Average (per active user in period): {_num(a.team_average_apply_lines)}",
        f"Tabs Accepted Ranking: {a.tabs_accepted_rank} of {a.total_team_members}",
        f"Your Total Tabs Accepted: {_num(a.total_tabs_accepted)}\n"
        f"Team Average (per active user in period): {_num(a.team_average_tabs_accepted)}",
    ]


def ranking_copy_text(team: TeamInfo | None, analytics: UserAnalytics | None) -> List[str]:
    """Clipboard text for the lines block and the tabs block, in that order."""
    if team is None or analytics is None:
        return []
    a = analytics
    return [
        f"Lines of Code Accepted Ranking: {a.apply_lines_rank} of {a.total_team_members}\n"
        f"Your Total Lines of Code Accepted: {_num(a.total_apply_lines)}\n"
        f"Team Average: {_num(a.team_average_apply_lines)}",
        f"Tabs Accepted Ranking: {a.tabs_accepted_rank} of {a.total_team_members}\n"
        f"Your Total Tabs Accepted: {_num(a.total_tabs_accepted)}\n"
        f"Team Average: {_num(a.team_average_tabs_accepted)}",
    ]


__all__ = [
    "QuotaSummary",
    "ResetCycle",
    "icon_tier",
    "summarize_quota",
    "format_rfc3339",
    "reset_cycle",
    "panel_title",
    "model_copy_text",
    "ranking_lines",
    "ranking_copy_text",
    "parse_iso",
]
