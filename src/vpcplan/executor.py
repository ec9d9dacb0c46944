from concurrent.futures import ThreadPoolExecutor, as_completed

from .core import DEFAULT_PARALLELISM
from .errors import RemoteRejectionError
from .logger import logger
from .planner import Action, Operation, Plan
from .provider import ComputeProvider
from .schemas.state import ResourceState, StateDocument
from .state import StateHandle


def _record(state: StateDocument, op: Operation) -> None:
    if op.action is Action.DELETE:
        state.resources.pop(op.address, None)
        return
    if op.record is None:
        raise ValueError(f"{op.action.value} {op.address} has no resolved record")
    state.resources[op.address] = ResourceState(
        kind=op.kind,
        key=op.key,
        self_link=op.record.self_link,
        attributes=op.record.attributes(),
    )


def _run_phase(
    phase: list[Operation],
    provider: ComputeProvider,
    state: StateDocument,
    parallelism: int,
) -> Exception | None:
    """
    Runs one phase with bounded fan-out. After the first failure nothing
    new is started; operations already in flight are allowed to finish and
    are recorded.
    """
    failure: Exception | None = None
    workers = max(1, min(parallelism, len(phase)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(provider.apply, op): op for op in phase}
        for future in as_completed(futures):
            op = futures[future]
            if future.cancelled():
                continue
            try:
                future.result()
            except Exception as e:
                message = e.message if isinstance(e, RemoteRejectionError) else repr(e)
                logger.error(f"{op.action.value} {op.address} failed: {message}")
                if failure is None:
                    failure = e
                    for pending in futures:
                        pending.cancel()
                continue
            _record(state, op)
            logger.info(f"{op.action.value} {op.address}: done")
    return failure


def apply_plan(
    plan: Plan,
    provider: ComputeProvider,
    state_handle: StateHandle,
    parallelism: int = DEFAULT_PARALLELISM,
) -> StateDocument:
    """
    Executes a plan phase by phase. The caller holds the state lock.

    Whatever was applied is written to state, even when a later operation
    fails; there is no rollback.
    """
    state = state_handle.read()
    failure: Exception | None = None
    try:
        for phase in plan.phases:
            if not phase:
                continue
            failure = _run_phase(phase, provider, state, parallelism)
            if failure is not None:
                break
    finally:
        state.outputs = state.compute_outputs()
        state = state_handle.write(state)

    if failure is not None:
        raise failure
    return state
