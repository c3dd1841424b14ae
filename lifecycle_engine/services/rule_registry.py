"""Business rule storage and evaluation."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lifecycle_engine.core.exceptions import NotFoundError
from lifecycle_engine.domain.business_rules import (
    BusinessRule,
    BusinessRuleCreate,
    default_rules,
    evaluate_rules,
    sort_rules,
)
from lifecycle_engine.domain.conditions import ConditionEvaluator
from lifecycle_engine.models.rule import StatusBusinessRule
from lifecycle_engine.schemas.transition import StatusTransitionContext, ValidationResult

logger = logging.getLogger(__name__)


class RuleRepository(ABC):
    """Where business rules come from."""

    @abstractmethod
    async def list_rules(self, organization_id: str) -> list[BusinessRule]:
        """All rules of an organization, active or not."""

    @abstractmethod
    async def save_rule(self, rule: BusinessRule) -> BusinessRule:
        """Insert or replace a rule by id."""

    @abstractmethod
    async def delete_rule(self, organization_id: str, rule_id: str) -> bool:
        """Delete an organization's rule. Returns False when it did not exist."""


class StaticRuleRepository(RuleRepository):
    """Default rules per organization plus rules saved in this process.

    Saving a rule with a default rule's id replaces that default for the
    organization.
    """

    def __init__(self) -> None:
        self._saved: dict[tuple[str, str], BusinessRule] = {}
        self._deleted: set[tuple[str, str]] = set()

    async def list_rules(self, organization_id: str) -> list[BusinessRule]:
        rules = {rule.id: rule for rule in default_rules(organization_id)}
        for (org_id, rule_id), rule in self._saved.items():
            if org_id == organization_id:
                rules[rule_id] = rule
        return [
            rule for rule_id, rule in rules.items() if (organization_id, rule_id) not in self._deleted
        ]

    async def save_rule(self, rule: BusinessRule) -> BusinessRule:
        key = (rule.organization_id, rule.id)
        self._saved[key] = rule
        self._deleted.discard(key)
        return rule

    async def delete_rule(self, organization_id: str, rule_id: str) -> bool:
        key = (organization_id, rule_id)
        rules = {rule.id for rule in await self.list_rules(organization_id)}
        if rule_id not in rules:
            return False
        self._saved.pop(key, None)
        self._deleted.add(key)
        return True


class SqlAlchemyRuleRepository(RuleRepository):
    """Rules stored in the `status_business_rules` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_rule(row: StatusBusinessRule) -> BusinessRule:
        return BusinessRule.model_validate(
            {
                "id": row.id,
                "name": row.name,
                "description": row.description or "",
                "category": row.category,
                "priority": row.priority,
                "is_active": row.is_active,
                "organization_id": row.organization_id,
                "property_id": row.property_id,
                "conditions": row.conditions or [],
                "actions": row.actions or [],
                "metadata": row.rule_metadata or {},
            }
        )

    async def list_rules(self, organization_id: str) -> list[BusinessRule]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(StatusBusinessRule).where(
                    StatusBusinessRule.organization_id == organization_id
                )
            )
            rows = result.scalars().all()

        rules = []
        for row in rows:
            try:
                rules.append(self._to_rule(row))
            except ValidationError as e:
                logger.warning(f"Skipping invalid business rule {row.id}: {e}")
        return rules

    async def save_rule(self, rule: BusinessRule) -> BusinessRule:
        payload = rule.model_dump(mode="json")
        async with self._session_factory() as db:
            row = await db.get(StatusBusinessRule, rule.id)
            if row is None:
                row = StatusBusinessRule(id=rule.id)
                db.add(row)
            row.organization_id = rule.organization_id
            row.property_id = rule.property_id
            row.name = rule.name
            row.description = rule.description
            row.category = rule.category.value
            row.priority = rule.priority
            row.is_active = rule.is_active
            row.conditions = payload["conditions"]
            row.actions = payload["actions"]
            row.rule_metadata = payload["metadata"]
            await db.commit()
        return rule

    async def delete_rule(self, organization_id: str, rule_id: str) -> bool:
        async with self._session_factory() as db:
            row = await db.get(StatusBusinessRule, rule_id)
            if row is None or row.organization_id != organization_id:
                return False
            await db.delete(row)
            await db.commit()
        return True


class BusinessRuleRegistry:
    """Per-organization cache of immutable, ordered rule sets.

    The cached tuple for an organization is only ever replaced, so a
    validation already holding it keeps a consistent view.
    """

    def __init__(
        self,
        repository: RuleRepository,
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        self._repository = repository
        self._evaluator = evaluator or ConditionEvaluator()
        self._cache: dict[str, tuple[BusinessRule, ...]] = {}

    @property
    def repository(self) -> RuleRepository:
        return self._repository

    async def refresh(self, organization_id: str) -> tuple[BusinessRule, ...]:
        rules = sort_rules(await self._repository.list_rules(organization_id))
        self._cache[organization_id] = rules
        logger.debug(f"Loaded {len(rules)} business rules for organization {organization_id}")
        return rules

    def invalidate(self, organization_id: str | None = None) -> None:
        if organization_id is None:
            self._cache = {}
        else:
            self._cache.pop(organization_id, None)

    async def all_rules(self, organization_id: str) -> tuple[BusinessRule, ...]:
        rules = self._cache.get(organization_id)
        if rules is None:
            rules = await self.refresh(organization_id)
        return rules

    async def active_rules(
        self, organization_id: str, property_id: str | None = None
    ) -> tuple[BusinessRule, ...]:
        """Active rules for the property, by descending priority then id."""
        rules = await self.all_rules(organization_id)
        return tuple(rule for rule in rules if rule.applies_to(organization_id, property_id))

    def evaluate(
        self,
        context: StatusTransitionContext,
        rules: tuple[BusinessRule, ...],
    ) -> ValidationResult:
        """Apply every matching rule. Pure: same context and rules, same result."""
        return evaluate_rules(context, rules, self._evaluator, ValidationResult())

    async def evaluate_for(self, context: StatusTransitionContext) -> ValidationResult:
        rules = await self.active_rules(context.organization_id, context.property_id)
        return self.evaluate(context, rules)

    async def create_rule(self, organization_id: str, data: BusinessRuleCreate) -> BusinessRule:
        rule = BusinessRule(
            id=f"custom-{uuid.uuid4()}",
            organization_id=organization_id,
            **data.model_dump(),
        )
        await self._repository.save_rule(rule)
        self.invalidate(organization_id)
        logger.info(f"Business rule '{rule.name}' created for organization {organization_id}")
        return rule

    async def update_rule(self, rule: BusinessRule) -> BusinessRule:
        await self._repository.save_rule(rule)
        self.invalidate(rule.organization_id)
        return rule

    async def delete_rule(self, organization_id: str, rule_id: str) -> None:
        """Delete an organization's rule.

        Raises:
            NotFoundError: If the organization has no such rule
        """
        if not await self._repository.delete_rule(organization_id, rule_id):
            raise NotFoundError("Business rule", rule_id)
        self.invalidate(organization_id)
        logger.info(f"Business rule {rule_id} deleted for organization {organization_id}")
