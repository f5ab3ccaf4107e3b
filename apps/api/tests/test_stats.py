import asyncio
from datetime import datetime, timezone

import httpx
from postgrest_fake import FakePostgrest

from grc_api.core.settings import get_settings
from grc_api.core.supabase_rest import SupabaseStore
from grc_api.services.coverage import summarize_portfolio
from grc_api.services.stats import (
    attach_counts,
    first_seen_counts,
    integration_stats,
    parse_timestamp,
    percentage,
    ranked_counts,
    summarize_cspm,
    summarize_dashboard,
    summarize_inventory,
)


def test_ranked_counts_breaks_ties_by_name() -> None:
    assert ranked_counts(["s3", "ec2", "rds", "ec2", "s3", "lambda"]) == [
        {"name": "ec2", "count": 2},
        {"name": "s3", "count": 2},
        {"name": "lambda", "count": 1},
        {"name": "rds", "count": 1},
    ]


def test_first_seen_counts_keeps_insertion_order() -> None:
    assert first_seen_counts(["low", "high", "low"]) == [{"name": "low", "count": 2}, {"name": "high", "count": 1}]


def test_summarize_inventory_of_empty_org() -> None:
    stats = summarize_inventory([], [], None)
    assert stats["summary"]["total_assets"] == 0
    assert stats["by_service"] == []
    assert stats["last_sync"] is None


def test_summarize_inventory_buckets_missing_values() -> None:
    stats = summarize_inventory(
        [{"environment": "", "data_classification": None, "lifecycle_state": "active"}],
        [{"status": "error"}],
        None,
    )
    assert stats["by_environment"] == [{"name": "untagged", "count": 1}]
    assert stats["by_classification"] == [{"name": "unclassified", "count": 1}]
    assert stats["summary"]["untagged_assets"] == 1
    assert stats["summary"]["connected_accounts"] == 0


def test_summarize_cspm_groups_by_provider_and_severity() -> None:
    stats = summarize_cspm(
        [{"provider": "aws"}, {"provider": None}],
        [{"severity": "critical"}],
        [],
    )
    assert stats == {
        "total_accounts": 2,
        "accounts_by_provider": {"aws": 1, "unknown": 1},
        "total_findings": 1,
        "findings_by_severity": {"critical": 1},
        "accounts_with_errors": 0,
    }


def test_integration_stats() -> None:
    rows = [
        {"status": "active", "sync_status": "error"},
        {"status": "inactive", "sync_status": "connected"},
    ]
    assert integration_stats(rows) == {"active": 1, "error": 1, "total": 2}


def test_attach_counts_issues_one_head_request_per_row() -> None:
    db = FakePostgrest()
    db.seed("cspm_findings", {"cloud_account_id": "a"}, {"cloud_account_id": "a"})
    store = SupabaseStore(get_settings(), httpx.AsyncClient(transport=httpx.MockTransport(db.handler)))

    rows = asyncio.run(
        attach_counts(
            store.session(),
            [{"id": "a"}, {"id": "b"}],
            table="cspm_findings",
            foreign_key="cloud_account_id",
        )
    )

    assert rows == [{"id": "a", "findings_count": 2}, {"id": "b", "findings_count": 0}]
    assert [request.method for request in db.requests] == ["HEAD", "HEAD"]


def test_percentage_rounds_halves_up() -> None:
    assert percentage(1, 3) == 33
    assert percentage(1, 8) == 13
    assert percentage(2, 3) == 67
    assert percentage(5, 0) == 0


def test_parse_timestamp_reads_dates_and_zulu_times() -> None:
    assert parse_timestamp("2026-03-01") == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


def test_summarize_dashboard_ignores_unknown_severities() -> None:
    summary = summarize_dashboard(
        control_summary=None,
        risks_by_severity=None,
        open_findings=[{"severity": "informational"}, {"severity": "medium"}],
        evidence_total=0,
        evidence_recent=0,
        frameworks=[],
        recent_activity=[],
        vendors=[],
        tasks=[{"due_date": None}, {"due_date": "2026-01-01"}],
        now=datetime(2026, 6, 1, tzinfo=timezone.utc),
    )
    assert summary["findings"] == {"critical": 0, "high": 0, "medium": 1, "low": 0, "total": 2}
    assert summary["tasks"] == {"open": 2, "overdue": 1}
    assert summary["compliance"]["controls"]["total_controls"] == 0


def test_summarize_portfolio_ignores_mappings_outside_the_selection() -> None:
    requirements = [{"id": "r-1", "framework_id": "f-1", "frameworks": {"id": "f-1", "code": "F1", "name": "One"}}]
    mappings = [
        {"ucf_control_id": "u-1", "requirement_id": "r-1", "ucf_controls": {"id": "u-1"}},
        {"ucf_control_id": "u-1", "requirement_id": "r-other", "ucf_controls": {"id": "u-1"}},
    ]
    summary = summarize_portfolio(requirements, mappings)
    assert summary["overlapping_controls"] == []
    assert summary["gaps"] == []
