from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from grc_api.core.supabase_rest import Row, SupabaseRest

INVENTORY_STATS_COLUMNS = (
    "service, resource_type, region, environment, criticality, lifecycle_state, "
    "internet_exposed, data_classification, provider, account_id, tags"
)
HIGH_RISK_LEVELS = ("high", "critical")
OPEN_TASK_STATUSES = ("open", "in_progress")
FINDING_SEVERITIES = ("critical", "high", "medium", "low")
RECENT_EVIDENCE_DAYS = 30
RECENT_ACTIVITY_LIMIT = 10
EMPTY_CONTROL_SUMMARY = {"total_controls": 0, "compliant": 0, "non_compliant": 0, "not_tested": 0}


def parse_timestamp(value: object) -> datetime | None:
    """ISO date or timestamp to an aware datetime; naive values are read as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def percentage(part: int, whole: int) -> int:
    """Whole-number share, halves rounded up; 0 when there is nothing to divide."""
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def _bucket(row: Row, column: str, fallback: str) -> str:
    value = row.get(column)
    if value is None or value == "":
        return fallback
    return str(value)


def ranked_counts(values: Iterable[str]) -> list[dict[str, Any]]:
    """Count values, largest first; equal counts are ordered by name."""
    counts = Counter(values)
    return [
        {"name": name, "count": count}
        for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]


def first_seen_counts(values: Iterable[str]) -> list[dict[str, Any]]:
    counts: dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return [{"name": name, "count": count} for name, count in counts.items()]


def summarize_inventory(
    assets: list[Row],
    accounts: list[Row],
    last_sync: Row | None,
) -> dict[str, Any]:
    summary = {
        "total_assets": len(assets),
        "active_assets": sum(1 for row in assets if row.get("lifecycle_state") in (None, "", "active")),
        "stale_assets": sum(1 for row in assets if row.get("lifecycle_state") == "stale"),
        "exposed_assets": sum(1 for row in assets if row.get("internet_exposed")),
        "untagged_assets": sum(1 for row in assets if not row.get("environment")),
        "connected_accounts": sum(1 for row in accounts if row.get("status") == "connected"),
        "total_accounts": len(accounts),
    }
    return {
        "summary": summary,
        "by_service": ranked_counts(_bucket(row, "service", "unknown") for row in assets),
        "by_resource_type": ranked_counts(_bucket(row, "resource_type", "unknown") for row in assets),
        "by_region": ranked_counts(_bucket(row, "region", "unknown") for row in assets),
        "by_environment": ranked_counts(_bucket(row, "environment", "untagged") for row in assets),
        "by_criticality": first_seen_counts(_bucket(row, "criticality", "medium") for row in assets),
        "by_classification": first_seen_counts(
            _bucket(row, "data_classification", "unclassified") for row in assets
        ),
        "last_sync": last_sync,
    }


async def inventory_stats(rest: SupabaseRest, org_id: str) -> dict[str, Any]:
    assets_query = rest.table("assets").select(INVENTORY_STATS_COLUMNS).eq("org_id", org_id)
    accounts_query = rest.table("cloud_accounts").select("id, provider, status").eq("org_id", org_id)
    last_job_query = (
        rest.table("discovery_jobs")
        .select()
        .eq("org_id", org_id)
        .order("created_at", desc=True)
        .limit(1)
    )
    assets, accounts, last_sync = await asyncio.gather(
        assets_query.execute(),
        accounts_query.execute(),
        last_job_query.maybe_single(),
    )
    return summarize_inventory(assets.rows, accounts.rows, last_sync)


def summarize_cspm(accounts: list[Row], findings: list[Row], errored: list[Row]) -> dict[str, Any]:
    by_provider: dict[str, int] = {}
    for row in accounts:
        provider = _bucket(row, "provider", "unknown")
        by_provider[provider] = by_provider.get(provider, 0) + 1

    by_severity: dict[str, int] = {}
    for row in findings:
        severity = _bucket(row, "severity", "unknown")
        by_severity[severity] = by_severity.get(severity, 0) + 1

    return {
        "total_accounts": len(accounts),
        "accounts_by_provider": by_provider,
        "total_findings": len(findings),
        "findings_by_severity": by_severity,
        "accounts_with_errors": len(errored),
    }


async def cspm_stats(rest: SupabaseRest, org_id: str) -> dict[str, Any]:
    accounts, findings, errored = await asyncio.gather(
        rest.table("cloud_accounts").select("provider").eq("org_id", org_id).execute(),
        rest.table("cspm_findings").select("severity").eq("org_id", org_id).execute(),
        rest.table("cloud_accounts").select("id").eq("org_id", org_id).eq("sync_status", "error").execute(),
    )
    return summarize_cspm(accounts.rows, findings.rows, errored.rows)


def integration_stats(integrations: list[Row]) -> dict[str, int]:
    return {
        "active": sum(1 for row in integrations if row.get("status") == "active"),
        "error": sum(1 for row in integrations if row.get("sync_status") == "error"),
        "total": len(integrations),
    }


async def organization_stats(rest: SupabaseRest, org_id: str) -> dict[str, Any]:
    controls, risks, tasks, vendors = await asyncio.gather(
        rest.rpc("get_control_status_summary", {"p_org_id": org_id}),
        rest.rpc("get_risks_by_severity", {"p_org_id": org_id}),
        rest.table("evidence_tasks")
        .select("id", count="exact")
        .eq("org_id", org_id)
        .in_("status", list(OPEN_TASK_STATUSES))
        .execute(),
        rest.table("vendors").select("id, risk_level").eq("org_id", org_id).eq("status", "active").execute(),
    )

    control_summary = controls[0] if isinstance(controls, list) and controls else None
    vendor_rows = vendors.rows
    return {
        "controls": control_summary,
        "risks": risks if isinstance(risks, list) else [],
        "open_tasks": tasks.count if tasks.count is not None else len(tasks.rows),
        "vendors": {
            "total": len(vendor_rows),
            "high_risk": sum(1 for row in vendor_rows if row.get("risk_level") in HIGH_RISK_LEVELS),
        },
    }


def summarize_dashboard(
    *,
    control_summary: Any,
    risks_by_severity: Any,
    open_findings: list[Row],
    evidence_total: int,
    evidence_recent: int,
    frameworks: list[Row],
    recent_activity: list[Row],
    vendors: list[Row],
    tasks: list[Row],
    now: datetime,
) -> dict[str, Any]:
    controls = control_summary[0] if isinstance(control_summary, list) and control_summary else None
    controls = controls or dict(EMPTY_CONTROL_SUMMARY)
    risks = risks_by_severity if isinstance(risks_by_severity, list) else []

    findings = {severity: 0 for severity in FINDING_SEVERITIES}
    for row in open_findings:
        severity = row.get("severity")
        if severity in findings:
            findings[severity] += 1
    findings["total"] = len(open_findings)

    overdue = 0
    for task in tasks:
        due = parse_timestamp(task.get("due_date"))
        if due is not None and due < now:
            overdue += 1

    return {
        "compliance": {
            "percentage": percentage(controls.get("compliant") or 0, controls.get("total_controls") or 0),
            "controls": controls,
            "frameworks": frameworks,
        },
        "risks": {
            "by_severity": risks,
            "open_count": sum(int(row.get("count") or 0) for row in risks if isinstance(row, dict)),
        },
        "findings": findings,
        "evidence": {"total": evidence_total, "recent_30_days": evidence_recent},
        "vendors": {
            "total": len(vendors),
            "unassessed": sum(1 for row in vendors if not row.get("last_assessed_at")),
            "high_risk": sum(1 for row in vendors if row.get("risk_level") in HIGH_RISK_LEVELS),
        },
        "tasks": {"open": len(tasks), "overdue": overdue},
        "recent_activity": recent_activity,
    }


async def dashboard_summary(rest: SupabaseRest, org_id: str, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    recent_cutoff = (now - timedelta(days=RECENT_EVIDENCE_DAYS)).isoformat()

    def evidence_count():
        return rest.table("evidence").select("id", count="exact", head=True).eq("org_id", org_id)

    (
        controls,
        risks,
        findings,
        evidence_total,
        evidence_recent,
        frameworks,
        activity,
        vendors,
        tasks,
    ) = await asyncio.gather(
        rest.rpc("get_control_status_summary", {"p_org_id": org_id}),
        rest.rpc("get_risks_by_severity", {"p_org_id": org_id}),
        rest.table("findings").select("severity").eq("org_id", org_id).eq("status", "open").execute(),
        evidence_count().execute(),
        evidence_count().gt("collected_at", recent_cutoff).execute(),
        rest.table("mv_compliance_summary").select().eq("org_id", org_id).execute(),
        rest.table("audit_logs")
        .select("id, action, resource_type, resource_id, performed_at")
        .eq("org_id", org_id)
        .order("performed_at", desc=True)
        .limit(RECENT_ACTIVITY_LIMIT)
        .execute(),
        rest.table("vendors")
        .select("id, risk_level, last_assessed_at")
        .eq("org_id", org_id)
        .eq("status", "active")
        .execute(),
        rest.table("evidence_tasks")
        .select("id, status, priority, due_date")
        .eq("org_id", org_id)
        .in_("status", list(OPEN_TASK_STATUSES))
        .execute(),
    )
    return summarize_dashboard(
        control_summary=controls,
        risks_by_severity=risks,
        open_findings=findings.rows,
        evidence_total=evidence_total.count or 0,
        evidence_recent=evidence_recent.count or 0,
        frameworks=frameworks.rows,
        recent_activity=activity.rows,
        vendors=vendors.rows,
        tasks=tasks.rows,
        now=now,
    )


async def attach_counts(
    rest: SupabaseRest,
    rows: list[Row],
    *,
    table: str,
    foreign_key: str,
    org_id: str | None = None,
    field: str = "findings_count",
) -> list[Row]:
    """Add a per-row count of child rows, one concurrent HEAD count per parent.

    A single failing count fails the whole call.
    """

    async def count_for(row: Row) -> int:
        query = rest.table(table).select("id", count="exact", head=True).eq(foreign_key, row.get("id"))
        if org_id is not None:
            query = query.eq("org_id", org_id)
        result = await query.execute()
        return result.count or 0

    counts = await asyncio.gather(*(count_for(row) for row in rows))
    return [{**row, field: count} for row, count in zip(rows, counts)]
