"""Models package: import every model so relationship strings resolve."""

from bizcontacts.models.dataset import Dataset, dataset_businesses  # noqa: F401
from bizcontacts.models.industry import Industry, IndustryGroup  # noqa: F401
from bizcontacts.models.discovery_run import DiscoveryRun  # noqa: F401
from bizcontacts.models.business import Business  # noqa: F401
from bizcontacts.models.crawl_job import CrawlJob  # noqa: F401
from bizcontacts.models.crawl_page import CrawlPage  # noqa: F401
from bizcontacts.models.extraction_job import ExtractionJob  # noqa: F401
from bizcontacts.models.contact import Contact, ContactSource  # noqa: F401
from bizcontacts.models.social_profile import SocialProfile  # noqa: F401
