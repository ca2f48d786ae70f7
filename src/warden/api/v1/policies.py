"""Rule management endpoints."""

from fastapi import APIRouter, Depends

from warden.dependencies import get_engine, require_operator, verify_api_key
from warden.engine.orchestrator import PolicyEngine
from warden.schemas.policy import PermissionsDocument

router = APIRouter(
    prefix="/v1/policies",
    tags=["policies"],
    dependencies=[Depends(verify_api_key)],
)


def _active(engine: PolicyEngine) -> dict:
    rules = engine.rules
    return {
        "version": rules.version,
        "loaded_at": rules.loaded_at,
        "fallback": rules.fallback,
        "deny": list(rules.deny),
        "allow": list(rules.allow),
        "ask": list(rules.ask),
    }


@router.get("/active", summary="Get the effective rule lists")
async def get_active_rules(engine: PolicyEngine = Depends(get_engine)) -> dict:
    return _active(engine)


@router.put(
    "/active",
    summary="Replace the rules and persist them",
    dependencies=[Depends(require_operator)],
)
async def replace_rules(
    document: PermissionsDocument,
    engine: PolicyEngine = Depends(get_engine),
) -> dict:
    engine.reload_rules(document)
    engine.rule_store.save()
    return _active(engine)


@router.post(
    "/reload",
    summary="Re-read the permissions file",
    dependencies=[Depends(require_operator)],
)
async def reload_rules(engine: PolicyEngine = Depends(get_engine)) -> dict:
    engine.reload_rules()
    return _active(engine)
