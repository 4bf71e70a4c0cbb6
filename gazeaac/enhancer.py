"""
Client for the sentence naturalisation service.

Any failure (network error, timeout, HTTP error, bad payload) is treated as a
successful response equal to the original sentence.
"""
import asyncio
import logging
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import EnhancementConfig


logger = logging.getLogger(__name__)


class EnhancementRequest(BaseModel):
    """Body POSTed to the enhancement service."""
    model_config = ConfigDict(populate_by_name=True)

    original_sentence: str = Field(alias="originalSentence")
    subject: Optional[str] = None
    predicate: Optional[str] = None
    category: Optional[str] = None
    is_question: bool = Field(default=False, alias="isQuestion")
    politeness: str = "casual"

    def cache_key(self) -> Tuple:
        return (self.subject, self.predicate, self.category, self.original_sentence,
                self.is_question, self.politeness)


class EnhancementResponse(BaseModel):
    """Body returned by the enhancement service."""
    sentence: Optional[str] = None
    error: Optional[str] = None


@runtime_checkable
class EnhancerProto(Protocol):
    """Abstract protocol for sentence enhancers."""

    async def enhance(self, request: EnhancementRequest) -> str:
        """Return the naturalised sentence (or the original one)."""
        ...


class PassthroughEnhancer:
    """Enhancer used when the service is disabled; returns the raw sentence."""

    async def enhance(self, request: EnhancementRequest) -> str:
        return request.original_sentence


class SentenceEnhancer:
    """
    HTTP client for the enhancement endpoint.

    Features:
    - JSON POST with a bounded total timeout
    - Fallback to the original sentence on every failure
    - Optional in-memory cache of successful results
    """

    def __init__(self, cfg: EnhancementConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self.url = cfg.url
        self.timeout = aiohttp.ClientTimeout(total=cfg.timeout_ms / 1000.0)
        self._session = session
        self._owns_session = session is None
        self._cache: Dict[Tuple, str] = {}

        self.request_count = 0
        self.failure_count = 0

    async def enhance(self, request: EnhancementRequest) -> str:
        """
        Naturalise a sentence.

        Args:
            request: Assembled sentence plus structured fields

        Returns:
            The enhanced sentence, or request.original_sentence on failure
        """
        key = request.cache_key()
        if self.cfg.cache and key in self._cache:
            logger.debug("Enhancement cache hit: %s", request.original_sentence)
            return self._cache[key]

        self.request_count += 1
        try:
            sentence = await self._post(request)
        except asyncio.TimeoutError:
            self.failure_count += 1
            logger.warning("Sentence enhancement timed out after %.0f ms, using original sentence",
                           self.cfg.timeout_ms)
            return request.original_sentence
        except (aiohttp.ClientError, ValidationError, ValueError) as e:
            self.failure_count += 1
            logger.warning("Sentence enhancement failed (%s), using original sentence", e)
            return request.original_sentence

        if self.cfg.cache:
            self._cache[key] = sentence
        return sentence

    async def _post(self, request: EnhancementRequest) -> str:
        session = await self._get_session()
        payload = request.model_dump(by_alias=True)
        async with session.post(self.url, json=payload, timeout=self.timeout) as response:
            response.raise_for_status()
            data = await response.json()

        body = EnhancementResponse.model_validate(data)
        if body.error:
            raise ValueError(body.error)
        if not body.sentence or not body.sentence.strip():
            raise ValueError("empty sentence in response")
        return body.sentence.strip()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def clear_cache(self) -> None:
        self._cache.clear()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def create_enhancer(cfg: EnhancementConfig) -> EnhancerProto:
    """Enhancer for the configuration: HTTP client, or passthrough when disabled."""
    if not cfg.enabled:
        logger.info("Sentence enhancement disabled")
        return PassthroughEnhancer()
    return SentenceEnhancer(cfg)
