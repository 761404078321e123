"""Price and collaborator data sources for lending pools."""

from lendpool.data.provider_factory import create_oracle

__all__ = ["create_oracle"]
