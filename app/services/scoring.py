"""Originality.ai scan client."""

from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.config import get_settings
from app.core.exceptions import ScoringApiError
from app.core.logging import get_logger

log = get_logger(__name__)


@dataclass
class ScoreResult:
    ai_score: float  # 0..1 probability the text is AI generated
    ai_confidence: float
    public_link: str | None
    scan_id: str | None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def original_score(self) -> float:
        return 1.0 - self.ai_score


class OriginalityClient:
    """
    Thin adapter over the scan endpoint. One attempt per call; no retries.
    Pass `transport` to route requests elsewhere (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        model_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.originality_api_key
        self.url = url or settings.originality_api_url
        self.model_version = model_version or settings.originality_model_version
        self.timeout = timeout if timeout is not None else settings.scoring_timeout_seconds
        self._transport = transport

    def build_request(self, title: str, content: str) -> dict[str, Any]:
        return {
            "title": title,
            "check_ai": True,
            "check_plagiarism": False,
            "check_facts": False,
            "check_readability": False,
            "check_grammar": False,
            "check_contentOptimizer": False,
            "storeScan": True,
            "excludedUrls": [],
            "aiModelVersion": self.model_version,
            "content": content,
        }

    async def scan(self, title: str, content: str) -> ScoreResult:
        payload = self.build_request(title, content)
        headers = {"X-OAI-API-KEY": self.api_key, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ScoringApiError("Scoring API timed out") from e
        except httpx.HTTPError as e:
            raise ScoringApiError(f"Scoring API unreachable: {e}") from e
        if resp.status_code < 200 or resp.status_code >= 300:
            log.warning("scoring_api_error", status_code=resp.status_code)
            raise ScoringApiError(
                f"Scoring API returned {resp.status_code}",
                upstream_status=resp.status_code,
                body=resp.text[:2000],
            )
        return self.parse_response(resp)

    @staticmethod
    def parse_response(resp: httpx.Response) -> ScoreResult:
        try:
            data = resp.json()
            ai = data["results"]["ai"]
            props = data["results"].get("properties") or {}
            ai_score = float(ai["classification"]["AI"])
            ai_confidence = float(ai["confidence"]["AI"])
        except (ValueError, KeyError, TypeError) as e:
            raise ScoringApiError(
                "Malformed scoring API response",
                upstream_status=resp.status_code,
                body=resp.text[:2000],
            ) from e
        scan_id = props.get("id")
        return ScoreResult(
            ai_score=ai_score,
            ai_confidence=ai_confidence,
            public_link=props.get("publicLink"),
            scan_id=str(scan_id) if scan_id is not None else None,
            raw=data,
        )
