"""
Base data source interface.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Literal

from cosmofy.services.cache import CacheScope
from cosmofy.services.fetcher import FetchRequest, RetryPolicy
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionSpec
from cosmofy.services.resolver import ParseFn, SourceDescriptor
from cosmofy.settings import IntegrationSettings


class BaseDataSource(ABC):
    """
    Abstract base class for all data sources.

    All data sources should:
    - Describe upstreams as SourceDescriptors and let the pipeline run them
    - Return normalized records through AcquisitionResult
    - Take retry, TTL and deadline knobs from their IntegrationSettings
    """

    def __init__(
        self,
        pipeline: AcquisitionPipeline | None = None,
        settings: IntegrationSettings | None = None,
    ):
        from cosmofy.services.pipeline import get_pipeline

        self.pipeline = pipeline or get_pipeline()
        self.settings = settings or self.default_settings()
        self.policy = RetryPolicy.from_settings(self.settings)

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this data source."""
        ...

    @abstractmethod
    def default_settings(self) -> IntegrationSettings:
        """Settings used when none are passed in."""
        ...

    def source(
        self,
        name: str,
        url: str,
        parse: ParseFn,
        params: dict[str, Any] | None = None,
        response_type: Literal["json", "text"] = "json",
        priority: int = 50,
        headers: dict[str, str] | None = None,
    ) -> SourceDescriptor:
        """One upstream call through the shared fetcher."""
        return SourceDescriptor.from_request(
            name=name,
            fetcher=self.pipeline.fetcher,
            request=FetchRequest(
                url=url,
                params=params,
                headers=headers,
                response_type=response_type,
                timeout=self.settings.request_timeout,
                service_id=self.service_id,
            ),
            parse=parse,
            priority=priority,
            policy=self.policy,
        )

    def ttl_for(self, scope: CacheScope) -> timedelta:
        return {
            CacheScope.COLLECTION: self.settings.collection_ttl,
            CacheScope.QUERY: self.settings.query_ttl,
            CacheScope.ENTITY: self.settings.entity_ttl,
        }[scope]

    def spec(self, scope: CacheScope, key: str, chain: list[SourceDescriptor], **kwargs) -> AcquisitionSpec:
        """AcquisitionSpec with this source's TTL, fallback window and deadline."""
        kwargs.setdefault("ttl", self.ttl_for(scope))
        kwargs.setdefault("fallback_ttl", self.settings.fallback_ttl)
        kwargs.setdefault("deadline", self.settings.deadline)
        return AcquisitionSpec(
            scope=scope,
            key=f"{self.service_id}:{key}",
            chain=chain,
            **kwargs,
        )
