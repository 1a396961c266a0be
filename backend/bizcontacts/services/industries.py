"""Industry group expansion for discovery requests."""

import logging

from sqlalchemy.orm import Session

from bizcontacts.models.industry import Industry, IndustryGroup
from bizcontacts.schemas.discovery import DiscoveryRequest

logger = logging.getLogger(__name__)


def _merge_unique(first: list, second: list) -> list:
    merged = list(first)
    for item in second:
        if item not in merged:
            merged.append(item)
    return merged


def expand_industry_group(db: Session, request: DiscoveryRequest) -> DiscoveryRequest:
    """Fold the group's registry activity codes and search keywords into the request.

    Registry discovery queries every activity code of the group; search
    sources use the merged keywords. A group without industries is an error.
    """
    if request.industry_group_id is None:
        return request

    group = db.get(IndustryGroup, request.industry_group_id)
    if group is None:
        raise LookupError(f"Industry group {request.industry_group_id} not found")

    industries = db.query(Industry).filter(Industry.group_id == group.id).order_by(Industry.name).all()
    if not industries:
        raise LookupError(f"No industries found for industry group {group.name} ({group.id})")

    activity_ids = _merge_unique(
        request.activity_ids,
        [i.activity_id for i in industries if i.activity_id is not None],
    )
    keywords = request.keywords
    for industry in industries:
        keywords = _merge_unique(keywords, [k.strip() for k in industry.discovery_keywords or [] if k and k.strip()])

    logger.info(
        f"Industry group {group.name}: {len(industries)} industries, "
        f"{len(activity_ids)} activity codes, {len(keywords)} keywords"
    )
    return request.model_copy(update={"activity_ids": activity_ids, "keywords": keywords})
