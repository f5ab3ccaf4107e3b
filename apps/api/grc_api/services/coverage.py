"""Control, evidence and framework coverage.

``evidence_mapping`` answers "which frameworks does each piece of evidence
serve, and which controls still lack evidence". ``portfolio_coverage`` looks
across a set of frameworks for unified (UCF) controls that satisfy several of
them at once, and for requirements no UCF control covers yet.
"""

from __future__ import annotations

import asyncio
from typing import Any

from grc_api.core.errors import StoreError
from grc_api.core.logging import get_logger
from grc_api.core.supabase_rest import Row, SupabaseRest
from grc_api.services.stats import percentage

logger = get_logger("services.coverage")

MAPPING_CONTROL_COLUMNS = """
    id, code, name,
    evidence_control_links(id),
    control_requirement_mappings(requirement_id, framework_requirements(id, framework_id, frameworks(id, name)))
"""
PORTFOLIO_REQUIREMENT_COLUMNS = """
    id, code, title, category, is_mandatory, framework_id,
    frameworks(id, code, name)
"""
UCF_MAPPING_COLUMNS = "ucf_control_id, requirement_id, ucf_controls(id, code, title, category)"


def _children(row: Row, name: str) -> list[Row]:
    value = row.get(name)
    return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []


def _parent(row: Row, name: str) -> Row | None:
    value = row.get(name)
    return value if isinstance(value, dict) else None


def summarize_evidence_mapping(evidence: list[Row], controls: list[Row], frameworks: list[Row]) -> dict[str, Any]:
    control_frameworks: dict[Any, set[str]] = {}
    covered_requirements: set[Any] = set()
    for control in controls:
        names = control_frameworks.setdefault(control.get("id"), set())
        for mapping in _children(control, "control_requirement_mappings"):
            covered_requirements.add(mapping.get("requirement_id"))
            requirement = _parent(mapping, "framework_requirements") or {}
            framework = _parent(requirement, "frameworks")
            if framework and framework.get("name"):
                names.add(str(framework["name"]))

    evidence_reuse = []
    for item in evidence:
        links = _children(item, "evidence_control_links")
        linked: set[str] = set()
        for link in links:
            linked |= control_frameworks.get(link.get("control_id"), set())
        evidence_reuse.append(
            {
                "evidence_id": item.get("id"),
                "title": item.get("title"),
                "linked_controls": len(links),
                "linked_frameworks": sorted(linked),
            }
        )

    ungapped_controls = []
    for control in controls:
        has_evidence = bool(_children(control, "evidence_control_links"))
        ungapped_controls.append(
            {
                "control_id": control.get("id"),
                "code": control.get("code"),
                "name": control.get("name"),
                "has_evidence": has_evidence,
                "evidence_source": "manual" if has_evidence else "none",
            }
        )

    framework_coverage = []
    for framework in frameworks:
        requirements = _children(framework, "framework_requirements")
        covered = sum(1 for requirement in requirements if requirement.get("id") in covered_requirements)
        framework_coverage.append(
            {
                "framework_id": framework.get("id"),
                "name": framework.get("name"),
                "total_requirements": len(requirements),
                "covered": covered,
                "coverage_pct": percentage(covered, len(requirements)),
            }
        )

    return {
        "evidence_reuse": evidence_reuse,
        "ungapped_controls": ungapped_controls,
        "framework_coverage": framework_coverage,
    }


async def evidence_mapping(rest: SupabaseRest, org_id: str) -> dict[str, Any]:
    evidence, controls, frameworks = await asyncio.gather(
        rest.table("evidence").select("id, title, evidence_control_links(control_id)").eq("org_id", org_id).execute(),
        rest.table("controls").select(MAPPING_CONTROL_COLUMNS).eq("org_id", org_id).execute(),
        rest.table("frameworks").select("id, name, framework_requirements(id)").execute(),
    )
    return summarize_evidence_mapping(evidence.rows, controls.rows, frameworks.rows)


def summarize_portfolio(requirements: list[Row], mappings: list[Row]) -> dict[str, Any]:
    requirements_by_id = {requirement.get("id"): requirement for requirement in requirements}

    grouped: dict[Any, dict[str, Any]] = {}
    for mapping in mappings:
        requirement = requirements_by_id.get(mapping.get("requirement_id"))
        framework = _parent(requirement, "frameworks") if requirement else None
        if framework is None:
            continue
        entry = grouped.setdefault(
            mapping.get("ucf_control_id"),
            {"ucf_control": _parent(mapping, "ucf_controls"), "frameworks": {}},
        )
        entry["frameworks"].setdefault(
            requirement.get("framework_id"),
            {"id": framework.get("id"), "code": framework.get("code"), "name": framework.get("name")},
        )

    overlapping = [
        {
            "ucf_control": entry["ucf_control"],
            "frameworks_count": len(entry["frameworks"]),
            "frameworks": list(entry["frameworks"].values()),
        }
        for entry in grouped.values()
        if len(entry["frameworks"]) >= 2
    ]
    overlapping.sort(key=lambda item: -item["frameworks_count"])

    mapped = {mapping.get("requirement_id") for mapping in mappings}
    gaps = []
    for requirement in requirements:
        if requirement.get("id") in mapped:
            continue
        framework = _parent(requirement, "frameworks")
        gaps.append(
            {
                "requirement_id": requirement.get("id"),
                "code": requirement.get("code"),
                "title": requirement.get("title"),
                "category": requirement.get("category"),
                "is_mandatory": requirement.get("is_mandatory"),
                "framework": (
                    {"id": framework.get("id"), "code": framework.get("code"), "name": framework.get("name")}
                    if framework
                    else None
                ),
            }
        )

    return {
        "overlapping_controls": overlapping,
        "overlapping_controls_count": len(overlapping),
        "gaps": gaps,
        "gaps_count": len(gaps),
    }


async def _portfolio_rpc(rest: SupabaseRest, org_id: str, framework_ids: list[str]) -> Any:
    try:
        return await rest.rpc("calculate_portfolio_coverage", {"p_org_id": org_id, "p_framework_ids": framework_ids})
    except StoreError as exc:
        logger.warning(
            "coverage.portfolio_rpc_failed",
            extra={"component": "coverage", "org_id": org_id, "error": exc.message},
        )
        return None


async def portfolio_coverage(rest: SupabaseRest, org_id: str, framework_ids: list[str]) -> dict[str, Any]:
    coverage, requirements = await asyncio.gather(
        _portfolio_rpc(rest, org_id, framework_ids),
        rest.table("framework_requirements")
        .select(PORTFOLIO_REQUIREMENT_COLUMNS)
        .in_("framework_id", framework_ids)
        .execute(),
    )

    mappings: list[Row] = []
    requirement_ids = [row.get("id") for row in requirements.rows]
    if requirement_ids:
        result = await (
            rest.table("ucf_requirement_mappings")
            .select(UCF_MAPPING_COLUMNS)
            .in_("requirement_id", requirement_ids)
            .execute()
        )
        mappings = result.rows

    return {
        "org_id": org_id,
        "framework_ids": framework_ids,
        "portfolio_coverage": coverage,
        **summarize_portfolio(requirements.rows, mappings),
    }
