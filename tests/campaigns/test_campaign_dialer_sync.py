from datetime import datetime, timezone

from onboarding_app.campaigns.pipeline import CAMPAIGNS_COLLECTION, DialerCampaignSync
from onboarding_app.stores import DocumentStore, DocumentStoreError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FlakyStore(DocumentStore):
    """Document store whose n-th commit fails."""

    def __init__(self, fail_on_commit):
        super().__init__()
        self.fail_on_commit = fail_on_commit
        self.commits = 0

    def commit_batch(self, operations):
        self.commits += 1
        if self.commits == self.fail_on_commit:
            raise DocumentStoreError("disk full")
        return super().commit_batch(operations)


def test_sync_all_counts_only_the_failed_batch(app, fake_dialer):
    fake_dialer.campaigns = [{"id": index, "name": f"Campaign {index}"} for index in range(1, 402)]
    store = FlakyStore(fail_on_commit=2)

    result = DialerCampaignSync(store, fake_dialer).sync_all(now=NOW)

    assert result.saved == 400
    assert result.failed == 1
    assert result.error == "disk full"
    assert store.count(CAMPAIGNS_COLLECTION) == 400


def test_sync_all_skips_entries_without_id(store, fake_dialer):
    fake_dialer.campaigns = [{"id": 5, "name": "Spring"}, {"name": "no id"}, "garbage"]

    result = DialerCampaignSync(store, fake_dialer).sync_all(now=NOW)

    assert (result.saved, result.failed) == (1, 2)
    cached = store.get(CAMPAIGNS_COLLECTION, "5")
    assert cached["campaign_name"] == "Spring"
    assert cached["last_fetched_at"] == NOW.isoformat()


def test_summary_tolerates_non_mapping_campaign(store, fake_dialer, monkeypatch):
    monkeypatch.setattr(fake_dialer, "get_campaign", lambda campaign_id: ["unexpected"])
    fake_dialer.contacts = [{"id": 1, "name": "Ann", "phone": "+1555"}]

    summary = DialerCampaignSync(store, fake_dialer).summary("12")

    assert summary["campaign"] == {"id": None, "name": None, "status": None, "mode": None, "created_at": None}
    assert summary["contacts"]["total"] == 1
    assert summary["contacts"]["statuses"] == {}
