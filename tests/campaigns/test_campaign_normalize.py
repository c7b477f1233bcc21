from datetime import datetime, timezone

from onboarding_app.campaigns.contracts import map_row_to_canonical
from onboarding_app.campaigns.contracts.upload import cell_to_str
from onboarding_app.campaigns.pipeline import FailureReason, deduplicate_records, normalize_rows

STAMP = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)


def test_cell_to_str_handles_spreadsheet_values():
    assert cell_to_str(None) is None
    assert cell_to_str("   ") is None
    assert cell_to_str("  C-1 ") == "C-1"
    assert cell_to_str(12345.0) == "12345"
    assert cell_to_str(12.5) == "12.5"
    assert cell_to_str(True) == "true"


def test_map_row_to_canonical_accepts_header_variants():
    assert map_row_to_canonical({"Customer_Id": "A"})["customer_id"] == "A"
    assert map_row_to_canonical({"customerId": "B"})["customer_id"] == "B"
    assert map_row_to_canonical({"Customer ID": "C"})["customer_id"] == "C"
    assert map_row_to_canonical({"customer-id": "D"})["customer_id"] == "D"

    canonical = map_row_to_canonical({"Campaign Name": "Spring", "Notes": "ignored", None: "x"})
    assert canonical == {"customer_id": None, "campaign_id": None, "campaign_name": "Spring"}


def test_map_row_to_canonical_first_non_empty_column_wins():
    canonical = map_row_to_canonical({"Customer_Id": None, "customerid": "second", "customer id": "third"})
    assert canonical["customer_id"] == "second"


def test_normalize_rows_numbers_rows_from_the_sheet():
    rows = [
        {"Customer_Id": "A-1", "Campaign Name": "Spring"},
        {"Customer_Id": None, "Campaign Name": "Spring"},
        {"Customer_Id": 42.0, "Campaign Name": None},
    ]

    result = normalize_rows(rows, now=STAMP)

    assert [record.customer_id for record in result.records] == ["A-1", "42"]
    assert [record.excel_row_number for record in result.records] == [2, 4]
    assert result.records[0].campaign_name == "Spring"
    assert result.records[0].uploaded_at == STAMP
    assert result.rows_processed == 3

    (failure,) = result.failures
    assert failure.row == 3
    assert failure.reason == FailureReason.MISSING_REQUIRED_CUSTOMER_ID.value
    assert failure.as_dict() == {
        "row": 3,
        "reason": "Missing required field: customerId",
        "kind": "source_row",
        "data": {"Customer_Id": None, "Campaign Name": "Spring"},
    }


def test_normalize_rows_do_not_call_is_true_or_absent():
    rows = [{"Customer_Id": "A-1"}]

    assert normalize_rows(rows).records[0].do_not_call is None
    assert normalize_rows(rows, do_not_call=True).records[0].do_not_call is True


def test_normalize_rows_trims_uploader():
    rows = [{"Customer_Id": "A-1"}]

    assert normalize_rows(rows, uploaded_by="  ops@example.test ").records[0].uploaded_by == "ops@example.test"
    assert normalize_rows(rows, uploaded_by="   ").records[0].uploaded_by is None


def test_upload_record_document_shape():
    record = normalize_rows([{"Customer_Id": "A-1", "CampaignId": "77"}], now=STAMP).records[0]

    document = record.as_document("camp-1", validated_at=STAMP)

    assert document["customer_id"] == "A-1"
    assert document["campaign_id"] == "77"
    assert document["campaign_id_ref"] == "camp-1"
    assert document["is_active"] is True
    assert document["excel_row_number"] == 2
    assert document["uploaded_at"] == STAMP.isoformat()


def test_deduplicate_keeps_first_occurrence():
    normalized = normalize_rows(
        [
            {"Customer_Id": "A"},
            {"Customer_Id": "B"},
            {"Customer_Id": "A"},
            {"Customer_Id": "C"},
            {"Customer_Id": "A"},
        ]
    )

    result = deduplicate_records(normalized.records)

    assert [(record.customer_id, record.excel_row_number) for record in result.records] == [
        ("A", 2),
        ("B", 3),
        ("C", 5),
    ]
    assert result.duplicate_count == 2
    assert [failure.row for failure in result.duplicates] == [4, 6]
    first = result.duplicates[0].as_dict()
    assert first["reason"] == "Duplicate customerId"
    assert first["kind"] == "upload_row"
    assert first["data"] == {
        "customer_id": "A",
        "campaign_id": None,
        "campaign_name": None,
        "excel_row_number": 4,
    }


def test_deduplicate_without_duplicates_is_identity():
    normalized = normalize_rows([{"Customer_Id": "A"}, {"Customer_Id": "B"}])

    result = deduplicate_records(normalized.records)

    assert result.records == normalized.records
    assert result.duplicates == []
