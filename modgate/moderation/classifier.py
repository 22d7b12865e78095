"""
ModGate - Classifier Gateway
============================

HTTP client for the external spam classifier.

DESIGN:
    The service speaks JSON over one URL:
    - POST   {"text": ...} -> {"spam_confidence": float, "mtime": number}
    - DELETE {"text": ...} negative feedback (not spam)
    - PATCH  {"text": ...} positive feedback (confirmed spam)

    Every call is attempted once and bounded by the configured timeout.
    Anything other than a well-formed 2xx answer raises
    ClassifierUnavailable with a reason, so an outage is never mistaken
    for a low score.

    Temporary exemptions also live here, since the classifier rule is the
    only reader. They are checked lazily and overwritten on re-grant.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import aiohttp

from modgate.core.logger import logger
from modgate.moderation.errors import ClassifierUnavailable
from modgate.moderation.models import ClassifierVerdict, TemporaryExemption


DEFAULT_EXEMPTION_MINUTES = 15


def _now_ms() -> int:
    return int(time.time() * 1000)


class ClassifierGateway:
    """
    Scores text and forwards reviewer feedback.

    Attributes:
        url: Classifier endpoint, or None.
        timeout: Seconds allowed per request.
    """

    def __init__(
        self,
        url: Optional[str],
        enabled: bool,
        timeout: float = 10,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._enabled = enabled
        self._session = session
        self._owns_session = session is None
        self._exemptions: Dict[int, TemporaryExemption] = {}

    @property
    def enabled(self) -> bool:
        """True only when switched on and a URL is configured."""
        return self._enabled and bool(self.url)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this gateway created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(self, method: str, text: str) -> Any:
        """Send one request and return the parsed JSON body (POST only)."""
        if not self.enabled:
            raise ClassifierUnavailable("disabled")

        session = self._get_session()
        try:
            async with session.request(
                method,
                self.url,
                json={"text": text},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise ClassifierUnavailable(f"http_{resp.status}", status=resp.status)
                if method != "POST":
                    return None
                try:
                    return await resp.json(content_type=None)
                except ValueError:
                    raise ClassifierUnavailable("bad_response")
        except asyncio.TimeoutError:
            raise ClassifierUnavailable("timeout")
        except aiohttp.ClientError as e:
            logger.debug("Classifier Network Error", [("Error", str(e)[:100])])
            raise ClassifierUnavailable("network")

    async def score(self, text: str) -> ClassifierVerdict:
        """
        Score text.

        Raises:
            ClassifierUnavailable: disabled, http_<status>, timeout, network
                or bad_response.
        """
        data = await self._request("POST", text)
        try:
            confidence = float(data["spam_confidence"])
            mtime = data.get("mtime")
        except (KeyError, TypeError, ValueError, AttributeError):
            raise ClassifierUnavailable("bad_response")
        if not 0.0 <= confidence <= 1.0:
            raise ClassifierUnavailable("bad_response")
        return ClassifierVerdict(confidence=confidence, model_mtime=mtime)

    async def send_feedback(self, text: str, is_spam: bool) -> bool:
        """
        Report a reviewer decision: PATCH for confirmed spam, DELETE otherwise.

        Raises:
            ClassifierUnavailable: On any non-2xx or transport failure.
        """
        method = "PATCH" if is_spam else "DELETE"
        await self._request(method, text)
        logger.tree("Classifier Feedback Sent", [
            ("Verdict", "Spam" if is_spam else "Not Spam"),
            ("Method", method),
        ], emoji="🧠")
        return True

    # =========================================================================
    # Temporary Exemptions
    # =========================================================================

    def grant_exemption(
        self,
        user_id: int,
        minutes: int = DEFAULT_EXEMPTION_MINUTES,
        now_ms: Optional[int] = None,
    ) -> TemporaryExemption:
        """Exempt user from the classifier for minutes, replacing any earlier grant."""
        start = now_ms if now_ms is not None else _now_ms()
        exemption = TemporaryExemption(user_id, start + minutes * 60 * 1000)
        self._exemptions[user_id] = exemption
        return exemption

    def is_exempt(self, user_id: int, now_ms: Optional[int] = None) -> bool:
        exemption = self._exemptions.get(user_id)
        if exemption is None:
            return False
        return exemption.is_active(now_ms if now_ms is not None else _now_ms())


__all__ = ["ClassifierGateway", "DEFAULT_EXEMPTION_MINUTES"]
