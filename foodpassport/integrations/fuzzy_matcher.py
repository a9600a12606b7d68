"""
Dish matchers for challenge completion.

HttpFuzzyMatcher delegates to the challenge service's
/check-challenge-completion endpoint. LocalFuzzyMatcher compares dish names
in-process with difflib and is used when no service URL is configured.
"""

import json
import logging
import re
from difflib import SequenceMatcher
from typing import Optional

import httpx

from foodpassport import config
from foodpassport.exceptions import ChallengeMatcherError, ConfigurationError, wrap_matcher_exception

logger = logging.getLogger(__name__)


class HttpFuzzyMatcher:
    """
    Remote fuzzy matcher. Timeouts are enforced by the caller.

    Without an injected client the matcher opens one pooled httpx.AsyncClient
    and reuses it for every call; aclose() releases it at shutdown.
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        if not base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"CHALLENGE_API_BASE_URL must be an http(s) URL, got '{base_url}'",
                config_key="CHALLENGE_API_BASE_URL"
            )
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def matches(
        self,
        challenge_dish_name: str,
        challenge_cuisine: Optional[str],
        new_dish_name: str,
        new_cuisine: Optional[str],
    ) -> bool:
        challenge_data = {
            "recommended_dish_name": challenge_dish_name,
            "cuisine_type": challenge_cuisine or "",
            "completion_criteria": {
                "dish_name_match": challenge_dish_name,
                "cuisine_match": challenge_cuisine or "",
                "flexible_matching": True,
            },
        }
        form = {
            "challenge_data": json.dumps(challenge_data),
            "new_dish_name": new_dish_name,
        }
        if new_cuisine:
            form["new_cuisine"] = new_cuisine

        url = f"{self.base_url}/check-challenge-completion"
        try:
            response = await self._client.post(url, data=form)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            raise wrap_matcher_exception(e, "check_challenge_completion")
        except ValueError as e:
            raise ChallengeMatcherError(
                f"Matcher returned invalid JSON: {e}",
                operation="check_challenge_completion",
                cause=e
            )

        if not result.get("success"):
            logger.warning(f"Challenge matcher returned success=false for '{challenge_dish_name}'")
            return False

        completed = bool(result.get("completed"))
        logger.debug(f"Matcher: '{new_dish_name}' vs '{challenge_dish_name}' -> {completed}")
        return completed


def _normalize_dish(name: Optional[str]) -> str:
    if not name:
        return ""
    return " ".join(re.findall(r"[a-z0-9]+", name.lower()))


class LocalFuzzyMatcher:
    """
    In-process dish matching.

    A dish matches when every word of the challenge dish appears in the new
    dish name ("Pad Thai" vs "Pad Thai Noodles"), or when the two names are
    similar enough by difflib ratio. When both cuisines are known they must
    agree.
    """

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = threshold if threshold is not None else config.CHALLENGE_MATCH_THRESHOLD

    async def matches(
        self,
        challenge_dish_name: str,
        challenge_cuisine: Optional[str],
        new_dish_name: str,
        new_cuisine: Optional[str],
    ) -> bool:
        return self.similar(challenge_dish_name, challenge_cuisine, new_dish_name, new_cuisine)

    async def aclose(self) -> None:
        """Nothing to release"""

    def similar(
        self,
        challenge_dish_name: str,
        challenge_cuisine: Optional[str],
        new_dish_name: str,
        new_cuisine: Optional[str],
    ) -> bool:
        target = _normalize_dish(challenge_dish_name)
        candidate = _normalize_dish(new_dish_name)
        if not target or not candidate:
            return False

        if not self._cuisines_agree(challenge_cuisine, new_cuisine):
            return False

        if set(target.split()) <= set(candidate.split()):
            return True

        ratio = SequenceMatcher(None, target, candidate).ratio()
        return ratio >= self.threshold

    @staticmethod
    def _cuisines_agree(challenge_cuisine: Optional[str], new_cuisine: Optional[str]) -> bool:
        expected = _normalize_dish(challenge_cuisine)
        actual = _normalize_dish(new_cuisine)
        if not expected or not actual:
            return True
        return expected in actual or actual in expected


def build_fuzzy_matcher(base_url: Optional[str] = None):
    """
    Remote matcher when a service URL is configured, local otherwise.

    The remote matcher holds one shared HTTP client; close it with aclose().
    """
    base_url = config.CHALLENGE_API_BASE_URL if base_url is None else base_url
    if base_url:
        logger.info(f"Using remote challenge matcher at {base_url}")
        return HttpFuzzyMatcher(base_url)
    logger.info("No CHALLENGE_API_BASE_URL configured, using local challenge matcher")
    return LocalFuzzyMatcher()
