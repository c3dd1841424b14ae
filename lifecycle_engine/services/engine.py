"""Engine assembly.

Components are built once at process start and passed to whoever needs
them. Nothing here is a module-level singleton.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lifecycle_engine.config import Settings
from lifecycle_engine.core.permissions import RolePermissionPolicy
from lifecycle_engine.domain.conditions import ConditionEvaluator
from lifecycle_engine.domain.reservation_state import StatusGraph
from lifecycle_engine.services.approval_service import ApprovalNotifier, LoggingApprovalNotifier
from lifecycle_engine.services.audit_service import StatusAuditService
from lifecycle_engine.services.integrity_service import DataIntegrityChecker
from lifecycle_engine.services.reservation_store import (
    ReservationStore,
    SqlAlchemyReservationStore,
)
from lifecycle_engine.services.rule_registry import (
    BusinessRuleRegistry,
    RuleRepository,
    SqlAlchemyRuleRepository,
    StaticRuleRepository,
)
from lifecycle_engine.services.sweep_service import ReservationSweepService
from lifecycle_engine.services.transition_validator import TransitionValidator


def build_graph(settings: Settings) -> StatusGraph:
    return StatusGraph.with_recovery() if settings.allow_status_recovery else StatusGraph()


@dataclass
class LifecycleEngine:
    """Wired set of engine components sharing one store and rule cache."""

    settings: Settings
    graph: StatusGraph
    policy: RolePermissionPolicy
    rules: BusinessRuleRegistry
    store: ReservationStore
    integrity: DataIntegrityChecker
    validator: TransitionValidator
    audit: StatusAuditService
    notifier: ApprovalNotifier
    sweep: ReservationSweepService

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: ReservationStore,
        rule_repository: RuleRepository | None = None,
        notifier: ApprovalNotifier | None = None,
        graph: StatusGraph | None = None,
    ) -> LifecycleEngine:
        graph = graph or build_graph(settings)
        policy = RolePermissionPolicy()
        rules = BusinessRuleRegistry(rule_repository or StaticRuleRepository(), ConditionEvaluator())
        integrity = DataIntegrityChecker(store, settings)
        validator = TransitionValidator(graph, policy, rules, integrity, settings)
        audit = StatusAuditService(store)
        notifier = notifier or LoggingApprovalNotifier()
        sweep = ReservationSweepService(store, validator, audit, notifier, settings)
        return cls(
            settings=settings,
            graph=graph,
            policy=policy,
            rules=rules,
            store=store,
            integrity=integrity,
            validator=validator,
            audit=audit,
            notifier=notifier,
            sweep=sweep,
        )

    @classmethod
    def from_session_factory(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> LifecycleEngine:
        """Engine backed by the database, rules from the configured repository."""
        graph = build_graph(settings)
        repository: RuleRepository
        if settings.rule_repository == "database":
            repository = SqlAlchemyRuleRepository(session_factory)
        else:
            repository = StaticRuleRepository()
        return cls.build(
            settings,
            SqlAlchemyReservationStore(session_factory, graph=graph),
            rule_repository=repository,
            graph=graph,
        )
