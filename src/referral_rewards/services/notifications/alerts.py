"""Best-effort webhook alerts for referral reward runs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

import httpx
from loguru import logger

from referral_rewards.core.settings import Settings


class RunAlertNotifier:
    """Post run alerts to a Slack-compatible webhook.

    Delivery problems are logged and never change the outcome of a run.
    """

    def __init__(self, settings: Settings, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._webhook_url = settings.alert_webhook_url
        self._channel = settings.alert_slack_channel
        self._service_name = settings.service_name
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def notify_run_failure(self, error: BaseException | str) -> bool:
        message = str(error) or type(error).__name__
        return await self._post(f":rotating_light: Referral rewards processing failed: {message}")

    async def notify_unrecorded_rewards(self, pairs: Iterable[tuple[int, int]]) -> bool:
        pairs = list(dict.fromkeys(tuple(pair) for pair in pairs))
        if not pairs:
            return False
        lines = [
            f":warning: {len(pairs)} referral reward(s) were granted but could not be recorded in the ledger.",
            "These pairs may be rewarded again on a later run:",
        ]
        lines.extend(f"• giving member {giving} → receiving member {receiving}" for giving, receiving in pairs)
        return await self._post("\n".join(lines))

    async def _post(self, text: str) -> bool:
        if not self._webhook_url:
            return False

        payload: dict[str, str] = {
            "text": text,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": self._service_name,
        }
        if self._channel:
            payload["channel"] = self._channel

        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=10)
            close_client = True

        try:
            response = await client.post(self._webhook_url, json=payload)
            response.raise_for_status()
        except Exception as exc:
            logger.warning("Referral rewards alert delivery failed", error=str(exc))
            return False
        finally:
            if close_client:
                await client.aclose()

        logger.info("Referral rewards alert delivered")
        return True


__all__ = ["RunAlertNotifier"]
