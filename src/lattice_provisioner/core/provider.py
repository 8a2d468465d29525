"""Lattice Provider - Connection configuration for the VPC Lattice API."""

from functools import cached_property
from typing import Any, Self

import boto3
from botocore.config import Config
from pydantic import BaseModel, ConfigDict, Field

SERVICE_NAME = "vpc-lattice"


class LatticeProvider(BaseModel):
    """Connection configuration for the VPC Lattice control plane.

    Credentials come from the standard AWS chain (env vars, shared config,
    instance role); ``profile`` selects a named profile. For testing, use
    the ``from_client`` classmethod to inject a client.

    Examples:
        # Default credential chain
        provider = LatticeProvider(region="us-west-2")

        # Named profile and default tags for every resource
        provider = LatticeProvider(
            region="us-west-2",
            profile="networking",
            default_tags={"team": "networking"},
        )
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    region: str | None = None
    profile: str | None = None
    endpoint_url: str | None = None
    max_attempts: int = Field(default=3, ge=1)
    default_tags: dict[str, str] = Field(default_factory=dict)

    # Injected client (for testing)
    _injected_client: Any = None

    @classmethod
    def from_client(cls, client: Any, *, default_tags: dict[str, str] | None = None) -> Self:
        """Create a provider with an injected ``vpc-lattice`` client.

        Args:
            client: A pre-configured boto3 client (or a test double)
            default_tags: Tags applied to every resource
        """
        provider = cls.model_construct(default_tags=dict(default_tags or {}))
        provider._injected_client = client
        return provider

    @cached_property
    def client(self) -> Any:
        """Get the VPC Lattice client."""
        if self._injected_client is not None:
            return self._injected_client

        session = boto3.session.Session(profile_name=self.profile, region_name=self.region)
        if session.region_name is None:
            raise ValueError(
                "No AWS region configured: set provider.region, AWS_REGION, "
                "or use LatticeProvider.from_client() to inject a client"
            )

        config = Config(retries={"max_attempts": self.max_attempts, "mode": "standard"})
        return session.client(SERVICE_NAME, endpoint_url=self.endpoint_url, config=config)
