"""
Profile Service - reads the user's voice preference and goals from Supabase.

This service:
1. Looks up user_profiles.voice_preference (default when unset)
2. Loads the user's most recent goals with category and motivation
3. Formats the goals into a prompt block for the language model

All reads go through the PostgREST API with the service-role key.
Lookup failures raise a database-stage UpstreamError; an absent preference
is not a failure.

Python 3.9 compatible - uses typing.Any, typing.Dict, typing.List, typing.Optional
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import Config
from .errors import UpstreamError
from .models import GoalSummary, UserContext

logger = logging.getLogger(__name__)

RECENT_GOALS_LIMIT = 5

GOALS_SELECT = (
    "id,title,deadline,frequency,start_date,created_at,"
    "categories!inner(name),"
    "motivations(motivation_text,obstacles)"
)

NO_GOALS_TEXT = (
    "The user hasn't set up any goals yet, "
    "but they're just getting started on their journey."
)


def _goal_from_row(row: Dict[str, Any]) -> GoalSummary:
    category = row.get("categories") or {}
    if isinstance(category, list):
        category = category[0] if category else {}

    motivations = row.get("motivations") or []
    if isinstance(motivations, dict):
        motivations = [motivations]
    first_motivation = motivations[0] if motivations else {}

    return GoalSummary(
        title=row.get("title") or "Untitled goal",
        category_name=category.get("name") or "Unknown",
        deadline=row.get("deadline"),
        frequency=row.get("frequency"),
        start_date=row.get("start_date"),
        motivation_text=first_motivation.get("motivation_text"),
        obstacles=list(first_motivation.get("obstacles") or []),
    )


def format_goals_for_prompt(goals: List[GoalSummary]) -> str:
    """Render goals as the plain-text block the persona prompt expects."""
    if not goals:
        return NO_GOALS_TEXT

    lines = ["Here are the user's current goals and progress:", ""]
    for index, goal in enumerate(goals, start=1):
        lines.append(f"Goal {index}: {goal.title}")
        lines.append(f"Category: {goal.category_name}")
        if goal.deadline:
            lines.append(f"Deadline: {goal.deadline}")
        if goal.motivation_text:
            lines.append(f"Motivation: {goal.motivation_text}")
        if goal.obstacles:
            lines.append(f"Obstacles: {', '.join(goal.obstacles)}")
        lines.append("")
    return "\n".join(lines)


class ProfileService:
    """Reads user profile and goal rows from Supabase."""

    def __init__(self, config: Config, http_client: Optional[httpx.AsyncClient] = None):
        self.rest_url = f"{config.supabase_url}/rest/v1"
        self.default_voice = config.default_voice_preference
        self._headers = {
            "apikey": config.supabase_service_role_key,
            "Authorization": f"Bearer {config.supabase_service_role_key}",
            "Accept": "application/json",
        }
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)

    async def close(self):
        await self.http_client.aclose()

    async def _select(self, table: str, params: Dict[str, str], request_id: str) -> List[Dict[str, Any]]:
        try:
            response = await self.http_client.get(
                f"{self.rest_url}/{table}", params=params, headers=self._headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Database request failed: requestId={request_id} table={table} error={e}")
            raise UpstreamError("database", f"Failed to query {table}: {e}")

        if response.status_code >= 400:
            logger.error(
                f"Database error: requestId={request_id} table={table} "
                f"status={response.status_code} body={response.text[:500]}"
            )
            raise UpstreamError(
                "database", f"Failed to query {table}: {_postgrest_message(response)}"
            )

        try:
            rows = response.json()
        except ValueError:
            raise UpstreamError("database", f"Failed to query {table}: invalid JSON response")
        return rows if isinstance(rows, list) else [rows]

    async def get_voice_preference(self, user_id: str, request_id: str = "unknown") -> str:
        """Return the user's voice id, or the configured default when unset."""
        rows = await self._select(
            "user_profiles",
            {"select": "voice_preference", "user_id": f"eq.{user_id}", "limit": "1"},
            request_id,
        )
        preference = rows[0].get("voice_preference") if rows else None
        if not preference:
            logger.warning(
                f"No voice preference found, using default: requestId={request_id} "
                f"userId={user_id} default={self.default_voice}"
            )
            return self.default_voice

        logger.info(f"Voice preference retrieved: requestId={request_id} userId={user_id} voice={preference}")
        return preference

    async def get_recent_goals(self, user_id: str, request_id: str = "unknown") -> List[GoalSummary]:
        """Return the user's newest goals, at most RECENT_GOALS_LIMIT."""
        rows = await self._select(
            "goals",
            {
                "select": GOALS_SELECT,
                "user_id": f"eq.{user_id}",
                "order": "created_at.desc",
                "limit": str(RECENT_GOALS_LIMIT),
            },
            request_id,
        )
        goals = [_goal_from_row(row) for row in rows]
        logger.info(
            f"Goals retrieved: requestId={request_id} userId={user_id} "
            f"goalsCount={len(goals)} "
            f"withMotivation={sum(1 for g in goals if g.motivation_text)}"
        )
        return goals

    async def get_user_context(self, user_id: str, request_id: str = "unknown") -> UserContext:
        voice = await self.get_voice_preference(user_id, request_id)
        goals = await self.get_recent_goals(user_id, request_id)
        return UserContext(user_id=user_id, voice_preference=voice, goals=goals)


def _postgrest_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"
