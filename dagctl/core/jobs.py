"""Resolve a job's reported conditions into an outcome.

A well-formed condition list has at most one of Complete/Failed set to True.
Malformed lists are not rejected: conditions are scanned in list order and
the first terminal one wins.
"""

from collections.abc import Iterable

from dagctl.core.models import ConditionStatus, Job, JobCondition, JobConditionType

_TERMINAL_TYPES = (JobConditionType.COMPLETE, JobConditionType.FAILED)


def _conditions(job_or_conditions: Job | Iterable[JobCondition]) -> Iterable[JobCondition]:
    if isinstance(job_or_conditions, Job):
        return job_or_conditions.conditions
    return job_or_conditions


def _terminal_type(condition: JobCondition) -> JobConditionType | None:
    if condition.status != ConditionStatus.TRUE:
        return None
    for condition_type in _TERMINAL_TYPES:
        if condition.type == condition_type:
            return condition_type
    return None


def job_outcome(
    job_or_conditions: Job | Iterable[JobCondition],
) -> tuple[JobConditionType | None, str]:
    """Return ``(kind, message)`` of the first terminal condition.

    Args:
        job_or_conditions: A Job or its condition list

    Returns:
        ``(JobConditionType.COMPLETE | JobConditionType.FAILED, message)`` for
        the first Complete/Failed condition whose status is True, otherwise
        ``(None, "")``.
    """
    for condition in _conditions(job_or_conditions):
        kind = _terminal_type(condition)
        if kind is not None:
            return kind, condition.message
    return None, ""


def is_job_finished(job_or_conditions: Job | Iterable[JobCondition]) -> bool:
    """Return True if any Complete/Failed condition has status True."""
    return any(_terminal_type(c) is not None for c in _conditions(job_or_conditions))
