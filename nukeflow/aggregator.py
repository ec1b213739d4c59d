"""
Aggregator - assemble step results into a BatchReport.

`aggregate` is a pure function of its inputs: the same results and order
always produce an equal report.
"""

from typing import Iterable, Mapping, Optional, Union

from nukeflow.schemas import BatchReport, BatchStatus, StepResult, StepStatus


def overall_status(results: Iterable[StepResult]) -> BatchStatus:
    """
    Derive the batch status.

    - failed if any step failed
    - partial_success if some step was skipped and none failed
    - succeeded otherwise (including the empty batch)
    """
    statuses = {r.status for r in results}
    if StepStatus.FAILED in statuses:
        return BatchStatus.FAILED
    if StepStatus.SKIPPED in statuses:
        return BatchStatus.PARTIAL_SUCCESS
    return BatchStatus.SUCCEEDED


def aggregate(
    step_results: Union[Mapping[str, StepResult], Iterable[StepResult]],
    order: Iterable[str],
    batch_id: Optional[str] = None,
) -> BatchReport:
    """
    Build a BatchReport ordered by submission order.

    Args:
        step_results: Results keyed by step_id, or any iterable of results
        order: step_ids in original submission order
        batch_id: Optional identifier carried into the report

    Returns:
        BatchReport with one StepResult per step in `order`

    Raises:
        ValueError: If a step in `order` has no result, a result has no
            position in `order`, or a step has more than one result
    """
    if isinstance(step_results, Mapping):
        by_id = dict(step_results)
    else:
        by_id = {}
        for result in step_results:
            if result.step_id in by_id:
                raise ValueError(f"More than one result for step '{result.step_id}'")
            by_id[result.step_id] = result

    order = list(order)
    missing = [sid for sid in order if sid not in by_id]
    if missing:
        raise ValueError(f"No result for step(s): {missing}")
    unexpected = sorted(set(by_id) - set(order))
    if unexpected:
        raise ValueError(f"Results for steps not in batch: {unexpected}")

    ordered = tuple(by_id[sid] for sid in order)
    return BatchReport(
        status=overall_status(ordered),
        steps=ordered,
        batch_id=batch_id,
    )
