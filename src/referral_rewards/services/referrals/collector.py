"""Paginated retrieval of one-visit customers."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from loguru import logger
from pydantic import ValidationError

from referral_rewards.core.settings import Settings
from referral_rewards.schemas.referrals import Candidate
from referral_rewards.services.upstream import MomenceClient, UpstreamRequestError


def build_candidate_filter(settings: Settings) -> Dict[str, Any]:
    """Customers tagged with the source membership who visited exactly once."""

    return {
        "type": "and",
        "visits": {
            "count": {"type": "exactly", "value": 1},
            "qualifiers": {
                "sessionIds": [],
                "templateIds": [],
                "sessionSeriesIds": [],
                "appointmentServiceIds": [],
                "membershipIds": [{"membershipId": settings.source_membership_id}],
                "teacherIds": [],
                "locationIds": [],
            },
            "dateType": "fixed",
            "startDate": settings.candidate_visits_start_date,
            "endDate": settings.candidate_visits_end_date,
        },
    }


class CandidateCollector:
    """Walk the customer listing until an empty page.

    Collection is best effort: a page that still fails after the executor's
    retries ends the walk and the pages fetched so far are returned.
    """

    def __init__(self, client: MomenceClient, settings: Settings) -> None:
        self._client = client
        self._page_size = settings.candidate_page_size
        self._filters = json.dumps(build_candidate_filter(settings))

    async def collect(self) -> List[Candidate]:
        candidates: List[Candidate] = []
        page = 0

        while True:
            params = {"filters": self._filters, "query": "", "page": page, "pageSize": self._page_size}
            try:
                response = await self._client.list_customers(params)
            except UpstreamRequestError as exc:
                logger.error("Candidate page fetch failed, truncating", page=page, error=str(exc))
                break

            rows = response.get("payload") if isinstance(response, dict) else None
            if not isinstance(rows, list) or not rows:
                break

            candidates.extend(_parse_candidates(rows, page))
            logger.info("Fetched candidate page", page=page, page_size=len(rows), total=len(candidates))
            page += 1

        logger.info("Candidate collection finished", total=len(candidates), pages=page)
        return candidates


def _parse_candidates(rows: List[Any], page: int) -> List[Candidate]:
    parsed: List[Candidate] = []
    for row in rows:
        try:
            parsed.append(Candidate.model_validate(row))
        except ValidationError as exc:
            logger.warning("Skipping malformed candidate", page=page, error=str(exc))
    return parsed


__all__ = ["CandidateCollector", "build_candidate_filter"]
