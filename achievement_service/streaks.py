"""
Client for the external login-streak source.

The caller builds one StreakClient, hands it to whoever needs it and closes
it when done; the HTTP connection pool and any bearer token live on the
instance, never at module level.
"""
import logging

import httpx

from shared.errors import UpstreamUnavailable

logger = logging.getLogger("achievement-service")


class StreakClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._token = token
        self._client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    def current_streak(self, user_id: int) -> int:
        try:
            r = self._client.get(f"/streaks/{user_id}", headers=self._headers())
        except httpx.RequestError as e:
            logger.error("streak service unreachable for user %s: %s", user_id, e)
            raise UpstreamUnavailable("streak service unavailable") from e

        if r.status_code == 404:
            return 0
        if r.status_code != 200:
            logger.error("streak service returned %s for user %s", r.status_code, user_id)
            raise UpstreamUnavailable(f"streak service returned {r.status_code}")

        try:
            data = r.json()
            return max(0, int(data.get("current_streak") or 0))
        except (ValueError, TypeError, AttributeError) as e:
            logger.error("malformed streak payload for user %s: %s", user_id, e)
            raise UpstreamUnavailable("malformed streak payload") from e

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "StreakClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
