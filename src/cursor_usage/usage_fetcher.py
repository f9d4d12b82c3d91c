from __future__ import annotations

"""Usage, team and analytics fetch cycle.

One ``fetch`` call runs the whole cycle and returns a ``UsageResult``; it
never raises. Team info and analytics are best effort: when they fail the
corresponding field is None and the usage part is still returned.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Callable, Optional, Tuple
from urllib.parse import quote, unquote

from .http_client import HttpResponse, RequestClient, RequestError
from .keys import redact
from .models import DisplayState, TeamInfo, UsageSnapshot, UserAnalytics, UserProfile

_log = logging.getLogger(__name__)

USAGE_URL = "https://www.cursor.com/api/usage?user={user_id}"
TEAMS_URL = "https://cursor.com/api/dashboard/teams"
ANALYTICS_URL = "https://cursor.com/api/dashboard/get-user-analytics"
AUTH_ME_URL = "https://www.cursor.com/api/auth/me"

DASHBOARD_HEADERS = {
    "content-type": "application/json",
    "origin": "https://cursor.com",
    "referer": "https://cursor.com/analytics",
}

Clock = Callable[[], datetime]


@dataclass(slots=True)
class UsageResult:
    state: DisplayState
    usage: Optional[UsageSnapshot] = None
    team_info: Optional[TeamInfo] = None
    user_analytics: Optional[UserAnalytics] = None


def derive_user_id(cookie: str) -> Optional[str]:
    """``WorkosCursorSessionToken=user_abc%3A%3Atoken`` -> ``user_abc``."""
    parts = unquote(cookie).split("=")
    if len(parts) < 2:
        return None
    user_id = parts[1].split("::")[0].strip()
    return user_id or None


def analytics_window(now: datetime) -> Tuple[str, str]:
    """Epoch-ms strings for local midnight 8 days ago and 1 day ago."""
    today = now.astimezone().date() if now.tzinfo else now.date()
    start = datetime.combine(today - timedelta(days=8), time())
    end = datetime.combine(today - timedelta(days=1), time())
    return str(int(start.timestamp() * 1000)), str(int(end.timestamp() * 1000))


def _decode(resp: HttpResponse) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise RequestError(f"malformed JSON body: {resp.body[:200]!r}") from e


def _is_unauthorized(resp: HttpResponse) -> bool:
    if resp.status == 401:
        return True
    try:
        data = json.loads(resp.body)
    except ValueError:
        return False
    return isinstance(data, dict) and data.get("statusCode") == 401


class UsageFetcher:
    def __init__(self, client: RequestClient, clock: Clock | None = None):
        self._client = client
        self._clock: Clock = clock or datetime.now

    # --- Public API -----------------------------------------------------
    async def fetch(self, cookie: str, explicit_user_id: str = "") -> UsageResult:
        if not cookie:
            _log.debug("cookie is not set")
            return UsageResult(DisplayState.NOT_CONFIGURED)
        user_id = explicit_user_id.strip() or derive_user_id(cookie)
        if not user_id:
            _log.debug("user id could not be derived from cookie %s", redact(cookie))
            return UsageResult(DisplayState.NOT_CONFIGURED)
        try:
            return await self._fetch(cookie, user_id)
        except Exception:
            _log.exception("error fetching usage data")
            return UsageResult(DisplayState.ERROR)

    async def fetch_team_info(self, cookie: str) -> Optional[TeamInfo]:
        try:
            resp = await self._client.request(TEAMS_URL, "POST", DASHBOARD_HEADERS, cookie, "{}")
            if resp.status != 200:
                raise RequestError(f"teams returned HTTP {resp.status}")
            team = TeamInfo.first_of(_decode(resp))
        except (RequestError, KeyError, TypeError, IndexError) as e:
            _log.info("team info unavailable: %s", e)
            return None
        if team is None:
            _log.debug("no teams found")
        else:
            _log.debug("team id %s, name %s", team.id, team.name)
        return team

    async def fetch_user_analytics(self, cookie: str, team: TeamInfo) -> Optional[UserAnalytics]:
        start, end = analytics_window(self._clock())
        body = json.dumps({"teamId": team.id, "userId": 0, "startDate": start, "endDate": end})
        try:
            resp = await self._client.request(ANALYTICS_URL, "POST", DASHBOARD_HEADERS, cookie, body)
            if resp.status != 200:
                raise RequestError(f"analytics returned HTTP {resp.status}")
            analytics = UserAnalytics.from_payload(_decode(resp))
        except (RequestError, ValueError, TypeError) as e:
            _log.info("user analytics unavailable: %s", e)
            return None
        _log.debug(
            "lines rank %s/%s, tabs rank %s/%s",
            analytics.apply_lines_rank,
            analytics.total_team_members,
            analytics.tabs_accepted_rank,
            analytics.total_team_members,
        )
        return analytics

    async def fetch_profile(self, cookie: str) -> Optional[UserProfile]:
        """Account info from ``/api/auth/me``; None when missing or on failure."""
        if not cookie:
            return None
        try:
            resp = await self._client.request(AUTH_ME_URL, "GET", {}, cookie)
            if resp.status != 200:
                raise RequestError(f"auth/me returned HTTP {resp.status}")
            return UserProfile.from_payload(_decode(resp))
        except RequestError as e:
            _log.info("user info unavailable: %s", e)
            return None

    # --- Internal -------------------------------------------------------
    async def _fetch(self, cookie: str, user_id: str) -> UsageResult:
        _log.debug("fetching usage for %s", user_id)
        resp = await self._client.request(
            USAGE_URL.format(user_id=quote(user_id, safe="")), "GET", {}, cookie
        )
        if _is_unauthorized(resp):
            _log.warning("usage request unauthorized; cookie is invalid or expired")
            return UsageResult(DisplayState.UNAUTHORIZED)
        if resp.status != 200:
            raise RequestError(f"usage returned HTTP {resp.status}")
        usage = UsageSnapshot.from_payload(_decode(resp))

        team = await self.fetch_team_info(cookie)
        analytics = await self.fetch_user_analytics(cookie, team) if team else None
        return UsageResult(DisplayState.OK, usage=usage, team_info=team, user_analytics=analytics)


__all__ = [
    "UsageFetcher",
    "UsageResult",
    "derive_user_id",
    "analytics_window",
    "USAGE_URL",
    "TEAMS_URL",
    "ANALYTICS_URL",
    "AUTH_ME_URL",
]
