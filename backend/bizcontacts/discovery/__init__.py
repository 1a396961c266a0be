"""Discovery package: import all sources to trigger @register_source decorators."""

from bizcontacts.discovery.business_registry import BusinessRegistrySource  # noqa: F401
from bizcontacts.discovery.geo_grid import GeoGridSource  # noqa: F401
from bizcontacts.discovery.listings import ListingDirectorySource  # noqa: F401
