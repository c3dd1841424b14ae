"""Business rule endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from lifecycle_engine.api.deps import get_engine
from lifecycle_engine.domain.business_rules import BusinessRule, BusinessRuleCreate
from lifecycle_engine.schemas.transition import RuleTestRequest, ValidationResult
from lifecycle_engine.services.engine import LifecycleEngine

router = APIRouter()


@router.get("", response_model=list[BusinessRule])
async def list_rules(
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
    organization_id: str = Query(...),
    property_id: str | None = Query(default=None),
    active_only: bool = Query(default=False),
) -> list[BusinessRule]:
    """Rules of an organization in evaluation order."""
    if active_only:
        return list(await engine.rules.active_rules(organization_id, property_id))
    return list(await engine.rules.all_rules(organization_id))


@router.post("", response_model=BusinessRule, status_code=status.HTTP_201_CREATED)
async def create_rule(
    data: BusinessRuleCreate,
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
    organization_id: str = Query(...),
) -> BusinessRule:
    """Create a custom rule for an organization."""
    return await engine.rules.create_rule(organization_id, data)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
    organization_id: str = Query(...),
) -> None:
    """Delete an organization's rule."""
    await engine.rules.delete_rule(organization_id, rule_id)


@router.post("/test", response_model=ValidationResult)
async def test_rules(
    data: RuleTestRequest,
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
) -> ValidationResult:
    """Evaluate the organization's active rules against a context.

    Only the rule layer runs; graph, role, integrity and threshold checks do not.
    """
    return await engine.rules.evaluate_for(data.context)
