import enum
import logging
import sys
import threading
from typing import Dict

DEFAULT_RUN_TIMEOUT_SECONDS = 60.0
# How long an abandoned workflow gets to notice cancellation and release a late browser.
ABORT_GRACE_SECONDS = 10.0


class RunOutcome(enum.Enum):
    SCHEDULED_EARLIER_FOUND = "scheduled_earlier_found"
    NO_EARLIER_AVAILABLE = "no_earlier_available"
    NO_SLOTS_AT_ALL = "no_slots_at_all"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


EXIT_CODES: Dict[RunOutcome, int] = {
    RunOutcome.SCHEDULED_EARLIER_FOUND: 0,
    RunOutcome.NO_EARLIER_AVAILABLE: 0,
    RunOutcome.NO_SLOTS_AT_ALL: 0,
    RunOutcome.FAILED: 1,
    RunOutcome.TIMED_OUT: 2,
}


def run_with_timeout(
    workflow, ceiling: float = DEFAULT_RUN_TIMEOUT_SECONDS, *, grace: float = ABORT_GRACE_SECONDS
) -> RunOutcome:
    """Race ``workflow.run()`` against a wall-clock ceiling.

    The workflow runs on a daemon thread. If it is still running when the ceiling
    passes it is abandoned: it gets a cancellation request and its browser is
    released from here. A browser that is still starting at that moment is quit
    by the workflow itself once it arrives, so the worker gets ``grace`` seconds
    to get there before the process exits.
    """
    result: Dict[str, RunOutcome] = {}

    def _target() -> None:
        try:
            result["outcome"] = workflow.run()
        except Exception as exc:  # noqa: BLE001
            logging.exception("Unexpected error escaped the workflow: %s", exc)
            result["outcome"] = RunOutcome.FAILED

    worker = threading.Thread(target=_target, name="session-workflow", daemon=True)
    worker.start()
    worker.join(ceiling)

    if worker.is_alive():
        logging.error(
            "Script timed out after %.1fs while in state %s. Terminating...",
            ceiling,
            getattr(getattr(workflow, "state", None), "name", "unknown"),
        )
        workflow.abort()
        worker.join(grace)
        if worker.is_alive():
            logging.warning("Workflow did not stop within %.1fs of cancellation", grace)
        return RunOutcome.TIMED_OUT

    return result.get("outcome", RunOutcome.FAILED)


def terminate(outcome: RunOutcome) -> None:
    """Log the outcome and exit the process with the matching status code."""
    code = EXIT_CODES[outcome]
    if outcome is RunOutcome.FAILED:
        logging.error("Run outcome: %s (exit code %s)", outcome.name, code)
    else:
        logging.info("Run outcome: %s (exit code %s)", outcome.name, code)
    sys.exit(code)
