"""Failed-step lookup for GitHub Actions workflow runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from relay_core.errors import safe_error_message
from relay_core.gh.client import get_repo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedStep:
    job_name: str
    step_name: str


def fetch_failed_steps(repo: str, run_id: int, token: str) -> list[FailedStep]:
    """Return the failed steps of every failed job in a run.

    Best-effort: returns [] on any GitHub error so a CI notification is never
    lost because the details could not be fetched.
    """
    try:
        run = get_repo(repo, token).get_workflow_run(run_id)
        failed: list[FailedStep] = []
        for job in run.jobs():
            if job.conclusion != "failure":
                continue
            for step in job.steps or []:
                if step.conclusion == "failure":
                    failed.append(FailedStep(job_name=job.name, step_name=step.name))
        return failed
    except Exception as e:
        logger.warning("Failed to fetch CI failure details for run %s: %s", run_id, safe_error_message(e))
        return []
