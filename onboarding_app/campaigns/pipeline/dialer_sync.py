"""Cache dialer campaigns in the ``campaigns`` collection and build campaign summaries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from onboarding_app.stores import DocumentStore, DocumentStoreError, WriteOp
from onboarding_app.utils.serialization import isoformat, utcnow

from ..adapters.ccai import CcaiClient
from .batch_writer import BatchedWriter

CAMPAIGNS_COLLECTION = "campaigns"


@dataclass
class CampaignSyncResult:
    payload: Any
    saved: int = 0
    failed: int = 0
    error: str | None = None

    def as_dict(self, key: str) -> dict[str, Any]:
        body: dict[str, Any] = {key: self.payload, "store_saved": self.saved, "store_failed": self.failed}
        if self.error:
            body["store_error"] = self.error
        return body


def campaign_document(campaign: Mapping[str, Any], campaign_id: str, *, now: datetime) -> dict[str, Any]:
    return {
        "campaign_id": campaign_id,
        "campaign_name": campaign.get("campaign_name") or campaign.get("name"),
        "description": campaign.get("description"),
        "status": campaign.get("status"),
        "created_at": campaign.get("created_at"),
        "updated_at": campaign.get("updated_at"),
        "full_data": dict(campaign),
        "last_fetched_at": isoformat(now),
        "synced_from_ccai": True,
    }


class DialerCampaignSync:
    """Fetch campaigns from the dialer and merge them into the local cache."""

    def __init__(self, store: DocumentStore, client: CcaiClient, *, logger: logging.Logger | None = None):
        self.store = store
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    def sync_all(self, *, now: datetime | None = None) -> CampaignSyncResult:
        campaigns = self.client.list_campaigns()
        now = now or utcnow()
        result = CampaignSyncResult(payload=campaigns)
        if not isinstance(campaigns, list):
            return result

        operations: list[WriteOp] = []
        for campaign in campaigns:
            if not isinstance(campaign, Mapping):
                result.failed += 1
                continue
            campaign_id = campaign.get("campaign_id") or campaign.get("id")
            if campaign_id in (None, ""):
                result.failed += 1
                continue
            operations.append(
                WriteOp.set(
                    CAMPAIGNS_COLLECTION,
                    str(campaign_id),
                    campaign_document(campaign, str(campaign_id), now=now),
                    merge=True,
                )
            )
        self._commit(operations, result)
        return result

    def sync_one(self, campaign_id: str, *, now: datetime | None = None) -> CampaignSyncResult:
        campaign = self.client.get_campaign(campaign_id)
        result = CampaignSyncResult(payload=campaign)
        if isinstance(campaign, Mapping):
            operation = WriteOp.set(
                CAMPAIGNS_COLLECTION,
                str(campaign_id),
                campaign_document(campaign, str(campaign_id), now=now or utcnow()),
                merge=True,
            )
            self._commit([operation], result)
        return result

    def summary(self, campaign_id: str) -> dict[str, Any]:
        """Campaign details combined with its contact list."""

        campaign = self.client.get_campaign(campaign_id)
        if not isinstance(campaign, Mapping):
            campaign = {}
        contacts = self.client.list_contacts(campaign_id) or []
        if not isinstance(contacts, list):
            contacts = []
        return {
            "campaign": {
                "id": campaign.get("id"),
                "name": campaign.get("name"),
                "status": campaign.get("status"),
                "mode": campaign.get("mode"),
                "created_at": campaign.get("created_at"),
            },
            "contacts": {
                "total": len(contacts),
                "statuses": campaign.get("contact_stats") or {},
                "list": [
                    {
                        "id": contact.get("id"),
                        "name": contact.get("name"),
                        "phone": contact.get("phone"),
                        "external_id": contact.get("external_unique_id"),
                        "status": contact.get("status"),
                        "created_at": contact.get("created_at"),
                    }
                    for contact in contacts
                    if isinstance(contact, Mapping)
                ],
            },
        }

    def _commit(self, operations: list[WriteOp], result: CampaignSyncResult) -> None:
        if not operations:
            return
        writer = BatchedWriter(self.store)
        try:
            for operation in operations:
                writer.add(operation)
            writer.flush()
        except DocumentStoreError as exc:
            # Batches committed before the failure stay saved
            result.saved += writer.stats.operations_committed
            result.failed += len(operations) - writer.stats.operations_committed
            result.error = str(exc)
            self.logger.warning(
                "Unable to cache dialer campaigns",
                extra={"campaigns_saved": result.saved, "campaigns_error": str(exc)},
            )
            return
        result.saved += writer.stats.operations_committed
