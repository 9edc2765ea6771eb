"""Runs a registration step end to end.

Order:
1. Run validator
2. Map step data
3. Build chain
4. Run chain
5. Run completion checker
6. Update status
7. Report

Update steps preload the entity they work on first. A failed preload ends
the step right there with a structured error result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from contextlib import AbstractContextManager, nullcontext
from enum import Enum
from typing import Any, Protocol

from onboarding.errors import ChainRolledBackError, PreloadError
from onboarding.services.types import CompletionReport, StepResult, StepStatusData

from .chain import EntityHandler, HandlerChain
from .context import EntityKind, MappedData, StepContext, StepInput
from .persister import EntityPersister, PersistOutcome

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class Validator(Protocol):
    def validate(self, step_input: StepInput) -> None: ...


class Mapper(Protocol):
    def map(self, step_input: StepInput) -> MappedData: ...


class CompletionChecker(Protocol):
    def check(self, context: Mapping[str, Any]) -> CompletionReport: ...


class StatusUpdater(Protocol):
    def prepare(self, primary: Any, step_input: StepInput) -> StepStatusData: ...

    def update(self, status_data: StepStatusData) -> None: ...

    def progress(self, primary: Any) -> Any: ...


class Preloader(Protocol):
    def preload(self, step_input: StepInput) -> Mapping[EntityKind, Any]: ...


class CommitPolicy(str, Enum):
    PER_NODE = "per_node"
    ALL_OR_NOTHING = "all_or_nothing"


# ---------------------------------------------------------------------------
# Finalizer
# ---------------------------------------------------------------------------


class StepFinalizer:
    """Validates, maps, persists, checks and reports one registration step.

    Args:
        validator: Rejects invalid step input before anything is written.
        mapper: Turns step input into per-table column data.
        completion_checker: Decides whether the step is done.
        status_updater: Records step completion and reports progress.
        persister: Persists single entities for the chain.
        primary_kind: Entity kind whose id identifies the registration.
        commit_policy: Keep what succeeded (``PER_NODE``) or roll back
            the whole chain on any failure (``ALL_OR_NOTHING``).
        chain_transaction: Context manager factory wrapping the whole chain
            under ``ALL_OR_NOTHING``, and the status update in any case.
    """

    def __init__(
        self,
        *,
        validator: Validator,
        mapper: Mapper,
        completion_checker: CompletionChecker,
        status_updater: StatusUpdater,
        persister: EntityPersister,
        primary_kind: EntityKind = EntityKind.CUSTOMER,
        commit_policy: CommitPolicy = CommitPolicy.PER_NODE,
        chain_transaction: Callable[[], AbstractContextManager[Any]] | None = None,
    ) -> None:
        self.validator = validator
        self.mapper = mapper
        self.completion_checker = completion_checker
        self.status_updater = status_updater
        self.persister = persister
        self.primary_kind = primary_kind
        self.commit_policy = CommitPolicy(commit_policy)
        self._chain_transaction = chain_transaction or nullcontext

    def finalize(
        self,
        step_input: StepInput,
        handlers: Iterable[EntityHandler],
        preloaded: Mapping[EntityKind, Any] | None = None,
    ) -> StepResult:
        self.run_validator(step_input)
        context = self.map_step_data(step_input, preloaded)
        chain = HandlerChain(handlers)
        rollback_error = self.run_saving_chain(chain, context)

        completion = self.run_completion_checker(context)
        errors = list(completion.errors)
        if completion.completed:
            status_error = self.run_status_updater(context)
            if status_error is not None:
                errors.append(status_error)
        else:
            logger.warning(
                "Step saved but not complete. Cause: %s", "; ".join(completion.errors)
            )

        if rollback_error is not None:
            errors.insert(0, str(rollback_error))
        return self.report(context, completion, errors)

    def finalize_update(
        self,
        step_input: StepInput,
        handlers: Iterable[EntityHandler],
        preloader: Preloader,
    ) -> StepResult:
        """Preload the existing registration, then finalize as usual."""
        try:
            preloaded = preloader.preload(step_input)
        except PreloadError as exc:
            logger.error("Step aborted, preload failed: %s", exc)
            return StepResult.preload_failure(str(exc))
        return self.finalize(step_input, handlers, preloaded=preloaded)

    def run_validator(self, step_input: StepInput) -> None:
        self.validator.validate(step_input)

    def map_step_data(
        self, step_input: StepInput, preloaded: Mapping[EntityKind, Any] | None = None
    ) -> StepContext:
        return StepContext(
            step_input=step_input,
            mapped_data=self.mapper.map(step_input),
            preloaded=dict(preloaded or {}),
        )

    def run_saving_chain(
        self, chain: HandlerChain, context: StepContext
    ) -> ChainRolledBackError | None:
        """Execute the chain under the configured commit policy.

        Returns:
            The rollback error when ``ALL_OR_NOTHING`` undid the chain.
        """
        if self.commit_policy is CommitPolicy.PER_NODE:
            self._log_outcomes(chain.execute(context, self.persister))
            return None

        try:
            with self._chain_transaction():
                self._log_outcomes(chain.execute(context, self.persister))
                if context.failures:
                    raise ChainRolledBackError(context.failures)
        except ChainRolledBackError as exc:
            context.discard_results()
            context.log(logging.ERROR, str(exc))
            return exc
        return None

    def primary_entity(self, context: StepContext) -> Any:
        """The primary entity saved by the chain, else the one preloaded for update."""
        primary = context.entity(self.primary_kind)
        if primary is None:
            primary = context.preloaded_entity(self.primary_kind)
        return primary

    def run_completion_checker(self, context: StepContext) -> CompletionReport:
        primary = self.primary_entity(context)
        return self.completion_checker.check(
            {
                "data_provider": context.step_input.get("dataProvider"),
                self.primary_kind.value: primary,
                "entities": dict(context.entity_results),
            }
        )

    def run_status_updater(self, context: StepContext) -> str | None:
        """Mark the step completed on the primary entity.

        Runs in its own chain transaction so a failed status write leaves the
        saved entities alone.

        Returns:
            The error message when the status could not be updated.
        """
        primary = self.primary_entity(context)
        try:
            with self._chain_transaction():
                self.status_updater.update(
                    self.status_updater.prepare(primary, context.step_input)
                )
        except Exception as exc:
            message = f"Unable to update step status. Cause: [{type(exc).__name__}] {exc}"
            context.log(logging.ERROR, message)
            return message
        return None

    def report(
        self,
        context: StepContext,
        completion: CompletionReport,
        errors: list[str] | None = None,
    ) -> StepResult:
        primary = self.primary_entity(context)
        return StepResult(
            entity_id=getattr(primary, "id", None),
            steps=self.status_updater.progress(primary),
            missing_fields=sorted(completion.missing_fields),
            errors=list(completion.errors) if errors is None else errors,
            outcomes={kind.value: entity_id for kind, entity_id in context.outcome_log.items()},
        )

    @staticmethod
    def _log_outcomes(outcomes: list[PersistOutcome]) -> None:
        logger.debug(
            "Chain finished: %s",
            ", ".join(f"{outcome.kind}={outcome.status.value}" for outcome in outcomes),
        )
