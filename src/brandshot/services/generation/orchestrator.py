"""Retry-then-fallback orchestration around a Generator.

Per generation unit:
    1. Call the primary with the full request.
    2. TransientProviderError -> retry once with request.simplified().
    3. CredentialError, or a transient failure that survived the retry,
       -> hand the original request to the fallback (itself a FallbackGenerator).
    4. PermanentProviderError -> propagate immediately.
"""

import asyncio
from typing import Optional

import structlog

from brandshot.services.generation.errors import (
    CredentialError,
    ProviderError,
    TransientProviderError,
    classify_error,
)
from brandshot.services.generation.types import GeneratedAsset, GenerationRequest, Generator

logger = structlog.get_logger()


class FallbackGenerator:
    """Generator wrapper adding one simplified retry and a fallback chain.

    Holds no per-call state; one instance serves every job and unit.
    """

    def __init__(
        self,
        primary: Generator,
        fallback: Optional["FallbackGenerator"] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize one link of a fallback chain.

        Args:
            primary: Generator tried first
            fallback: Next link, tried on credential or persistent transient failure
            timeout: Per-call deadline in seconds; expiry counts as transient
        """
        self.primary = primary
        self.fallback = fallback
        self.timeout = timeout
        self.name = primary.name

    @property
    def chain(self) -> list[str]:
        """Provider names in the order they would be tried."""
        names = [self.primary.name]
        if self.fallback is not None:
            names.extend(self.fallback.chain)
        return names

    async def generate(self, request: GenerationRequest) -> GeneratedAsset:
        try:
            return await self._invoke(request)
        except (CredentialError, TransientProviderError) as e:
            if self.fallback is None:
                raise
            logger.warning(
                "generation.fallback",
                request_id=request.request_id,
                provider=self.primary.name,
                fallback=self.fallback.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return await self.fallback.generate(request)

    async def _invoke(self, request: GenerationRequest) -> GeneratedAsset:
        try:
            return await self._call(request)
        except TransientProviderError as e:
            logger.warning(
                "generation.retry",
                request_id=request.request_id,
                provider=self.primary.name,
                variation=request.variation_index,
                error=str(e),
            )
        return await self._call(request.simplified())

    async def _call(self, request: GenerationRequest) -> GeneratedAsset:
        try:
            async with asyncio.timeout(self.timeout):
                return await self.primary.generate(request)
        except ProviderError:
            raise
        except Exception as e:
            # asyncio.CancelledError is a BaseException and is never caught here
            raise classify_error(e, self.primary.name) from e
