from fastapi import APIRouter

from grc_api.api.endpoints import (
    assets,
    audit_logs,
    audits,
    cloud_accounts,
    cloud_inventory,
    compliance,
    controls,
    cspm,
    dashboard,
    evidence,
    findings,
    frameworks,
    health,
    incidents,
    integrations,
    organizations,
    policies,
    risks,
    vendors,
)

router = APIRouter()
router.include_router(health.router)
router.include_router(organizations.router)
router.include_router(assets.router)
router.include_router(audits.router)
router.include_router(cloud_accounts.router)
router.include_router(cloud_inventory.router)
router.include_router(cspm.router)
router.include_router(findings.router)
router.include_router(frameworks.router)
router.include_router(incidents.router)
router.include_router(integrations.router)
router.include_router(risks.router)
router.include_router(vendors.router)
router.include_router(controls.router)
router.include_router(policies.router)
router.include_router(evidence.router)
router.include_router(dashboard.router)
router.include_router(compliance.router)
router.include_router(audit_logs.router)
