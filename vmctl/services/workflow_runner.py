"""Runs an ordered list of workflow steps with attempt, log, abort-or-continue semantics."""

import logging
from typing import Any, Dict, Optional, Sequence

from vmctl.exceptions import VmctlError
from vmctl.models.workflow import Stage, Step, StepLog, WorkflowResult

logger = logging.getLogger(__name__)


class StepRunner:
    """
    Drives steps in order.

    A fatal step that raises VmctlError ends the run in the failed stage
    with the step name, error kind and raw diagnostic attached. Nothing
    already done is rolled back.
    """

    def __init__(self, steps: Sequence[Step], reporter: Optional[Any] = None):
        """
        Args:
            steps: Ordered steps
            reporter: Optional OperationLogger receiving step events
        """
        self.steps = list(steps)
        self.reporter = reporter

    def run(
        self,
        succeeded: Stage,
        failed: Stage,
        log: Optional[StepLog] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> WorkflowResult:
        log = log or StepLog()
        details = details if details is not None else {}

        for step in self.steps:
            self._report("step", step.name)
            warnings_before = len(log.warnings)
            entries_before = len(log)

            try:
                entry = step.action(log)
            except VmctlError as e:
                if step.fatal:
                    return self._fail(step, e, log, failed, details)
                logger.warning("Step '%s' failed (continuing): %s", step.name, e.message)
                log.warn(f"{step.name}: {e.message}")
                self._report_new_warnings(log, warnings_before)
                continue

            if entry:
                log.append(entry)
            for new_entry in log.entries[entries_before:]:
                logger.info("%s", new_entry)
                self._report("success", new_entry)
            self._report_new_warnings(log, warnings_before)

        return WorkflowResult(
            success=True,
            stage=succeeded,
            steps=log.entries,
            warnings=log.warnings,
            details=details,
        )

    def _fail(
        self, step: Step, error: VmctlError, log: StepLog, failed: Stage, details: Dict[str, Any]
    ) -> WorkflowResult:
        log.append(f"{step.name} failed: {error.message}")
        logger.error("Step '%s' failed: %s", step.name, error.message)
        if error.context:
            logger.debug("Diagnostic for '%s': %s", step.name, error.context)
        self._report("log_error", f"{step.name} failed: {error.message}", context=error.context)

        return WorkflowResult(
            success=False,
            stage=failed,
            steps=log.entries,
            warnings=log.warnings,
            error=error.message,
            error_kind=error.kind,
            failed_step=step.name,
            diagnostic=error.context,
            details={**details, "failed_stage": step.stage.value},
        )

    def _report_new_warnings(self, log: StepLog, since: int) -> None:
        for warning in log.warnings[since:]:
            self._report("warning", warning)

    def _report(self, event: str, message: str, **kwargs) -> None:
        if self.reporter is None:
            return
        getattr(self.reporter, event)(message, **kwargs)
