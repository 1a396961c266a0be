"""Discovery source registry: maps source names to discovery source classes."""

import logging
from typing import Type

from bizcontacts.discovery.base import BaseDiscoverySource

logger = logging.getLogger(__name__)

# Source name -> discovery source class mapping
_REGISTRY: dict[str, Type[BaseDiscoverySource]] = {}


def register_source(name: str):
    """Decorator to register a discovery source class under a name."""
    def decorator(cls: Type[BaseDiscoverySource]):
        _REGISTRY[name] = cls
        cls.source_name = name
        logger.debug(f"Registered discovery source: {name}")
        return cls
    return decorator


def get_source_class(name: str) -> Type[BaseDiscoverySource] | None:
    return _REGISTRY.get(name)


def list_sources() -> list[str]:
    return list(_REGISTRY.keys())
