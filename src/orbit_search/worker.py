"""
Pass computation off the caller's thread.

This module defines the message protocol spoken with the pass worker and
a client that correlates requests and responses by id.

Request:  {"type": "calculatePasses", "requestId": int, "tle", "location", "filters"}
          plus optional "stepSeconds" and "horizonDeg"
Response: {"type": "passes", "requestId": int, "data": [pass dicts]}

A failed computation still answers with a "passes" message and empty
data, plus an "error" text so the caller can tell it apart from a
window without passes.
"""

from concurrent.futures import Executor, Future, InvalidStateError, ProcessPoolExecutor
from typing import Any, Dict, List, Optional, Tuple
import logging
import multiprocessing as mp
import threading

from .observer import ObserverLocation, SearchFilters
from .orbit import OrbitalMechanics
from .segmenter import Pass
from .tle import TleRecord

logger = logging.getLogger(__name__)

REQUEST_TYPE = "calculatePasses"
RESPONSE_TYPE = "passes"
ERROR_TYPE = "error"


class PassCalculationError(RuntimeError):
    """Raised on the client side when the worker reports a failed computation."""


def build_request(
    request_id: int,
    tle: TleRecord,
    location: ObserverLocation,
    filters: SearchFilters,
    step_seconds: Optional[float] = None,
    horizon_deg: Optional[float] = None,
) -> Dict[str, Any]:
    """Serialize a pass computation request into a plain message."""
    filter_data = filters.to_dict()
    filter_data.pop("location", None)
    message: Dict[str, Any] = {
        "type": REQUEST_TYPE,
        "requestId": request_id,
        "tle": tle.to_dict(),
        "location": location.to_dict(),
        "filters": filter_data,
    }
    if step_seconds is not None:
        message["stepSeconds"] = step_seconds
    if horizon_deg is not None:
        message["horizonDeg"] = horizon_deg
    return message


def handle_message(
    message: Dict[str, Any], mechanics: Optional[OrbitalMechanics] = None
) -> Dict[str, Any]:
    """
    Worker entry point for a single message.

    This function is designed to be pickled and run in a separate process.
    It never raises: failed computations answer with an empty pass list
    and an "error" entry, unknown message types with an error message.

    Args:
        message: Request message
        mechanics: Orbital-mechanics capability (orbit-predictor when omitted)

    Returns:
        Response message
    """
    message_type = message.get("type")
    request_id = message.get("requestId")

    if message_type != REQUEST_TYPE:
        logger.warning(f"Unknown worker message type: {message_type!r}")
        return {
            "type": ERROR_TYPE,
            "requestId": request_id,
            "error": f"Unknown message type: {message_type!r}",
        }

    try:
        # Import here to avoid a circular import with the search module
        from .search import calculate_passes

        tle_data = message["tle"]
        tle = TleRecord.from_lines(tle_data["line1"], tle_data["line2"], name=tle_data.get("name"))
        location = ObserverLocation.from_dict(message["location"])
        filters = SearchFilters.from_dict({**message["filters"], "location": location.to_dict()})

        kwargs: Dict[str, Any] = {}
        if message.get("stepSeconds") is not None:
            kwargs["step_seconds"] = float(message["stepSeconds"])
        if message.get("horizonDeg") is not None:
            kwargs["horizon_deg"] = float(message["horizonDeg"])

        passes = calculate_passes(tle, location, filters, mechanics=mechanics, **kwargs)
    except Exception as e:
        logger.error(f"Pass calculation for request {request_id} failed: {e}")
        return {"type": RESPONSE_TYPE, "requestId": request_id, "data": [], "error": str(e)}

    return {"type": RESPONSE_TYPE, "requestId": request_id, "data": [p.to_dict() for p in passes]}


def _create_process_pool(max_workers: int) -> ProcessPoolExecutor:
    # 'fork' starts faster; fall back to the platform default where unavailable
    mp_context = None
    try:
        mp_context = mp.get_context("fork")
    except ValueError:
        logger.debug("'fork' context not available, using default")
    return ProcessPoolExecutor(max_workers=max_workers, mp_context=mp_context)


class PassWorkerClient:
    """
    Request/response client for the pass worker.

    Each request gets a monotonically increasing id and a Future that
    resolves to a list of Pass objects. Responses are delivered at most
    once; concurrent requests resolve in completion order, not submission
    order.
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        max_workers: int = 1,
        mechanics: Optional[OrbitalMechanics] = None,
        owns_executor: Optional[bool] = None,
    ) -> None:
        """
        Args:
            executor: Executor running :func:`handle_message`; a private
                process pool with ``max_workers`` workers when omitted
            max_workers: Worker count for the private pool
            mechanics: Orbital-mechanics capability handed to every
                computation; must be picklable with a process pool
            owns_executor: Shut the executor down in :meth:`shutdown`;
                defaults to True only for the private pool
        """
        self.mechanics = mechanics
        self._owns_executor = executor is None if owns_executor is None else owns_executor
        self._executor = executor or _create_process_pool(max_workers)
        self._lock = threading.RLock()
        self._next_id = 0
        self._pending: Dict[int, Tuple[Future, Future]] = {}
        self._closed = False

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def is_pending(self, request_id: int) -> bool:
        with self._lock:
            return request_id in self._pending

    def submit(
        self,
        tle: TleRecord,
        location: ObserverLocation,
        filters: SearchFilters,
        step_seconds: Optional[float] = None,
        horizon_deg: Optional[float] = None,
    ) -> Tuple[int, "Future[List[Pass]]"]:
        """
        Send a pass computation request.

        Returns:
            Tuple of (request_id, future resolving to the passes). The
            future raises PassCalculationError when the worker reports a
            failed computation.

        Raises:
            RuntimeError: If the client has been shut down
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("PassWorkerClient has been shut down")
            self._next_id += 1
            request_id = self._next_id
            message = build_request(request_id, tle, location, filters, step_seconds, horizon_deg)

            result: Future = Future()
            task = self._executor.submit(handle_message, message, self.mechanics)
            self._pending[request_id] = (result, task)

        logger.debug(f"Submitted pass request {request_id} for {tle.norad_id}")
        task.add_done_callback(lambda done, rid=request_id: self._on_response(rid, done))
        return request_id, result

    def calculate_passes(
        self,
        tle: TleRecord,
        location: ObserverLocation,
        filters: SearchFilters,
        step_seconds: Optional[float] = None,
        horizon_deg: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> List[Pass]:
        """Submit a request and wait for its passes."""
        _, future = self.submit(tle, location, filters, step_seconds, horizon_deg)
        return future.result(timeout=timeout)

    def _on_response(self, request_id: int, task: Future) -> None:
        with self._lock:
            entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.debug(f"Dropping response for released request {request_id}")
            return

        result, _ = entry
        try:
            if task.cancelled():
                result.cancel()
                return
            error = task.exception()
            if error is not None:
                logger.error(f"Pass worker failed for request {request_id}: {error}")
                result.set_exception(error)
                return

            response = task.result()
            if response.get("type") != RESPONSE_TYPE or response.get("error"):
                message = response.get("error") or f"Unexpected response type {response.get('type')!r}"
                logger.warning(f"Pass request {request_id} failed in the worker: {message}")
                result.set_exception(PassCalculationError(message))
                return
            passes = [Pass.from_dict(p) for p in response.get("data", [])]
            result.set_result(passes)
        except InvalidStateError:
            logger.debug(f"Result for request {request_id} was already cancelled")

    def cancel(self, request_id: int) -> bool:
        """
        Release a pending request.

        The underlying task is cancelled if it has not started; a response
        arriving later is dropped.

        Returns:
            True if the request was pending
        """
        with self._lock:
            entry = self._pending.pop(request_id, None)
        if entry is None:
            return False

        result, task = entry
        task.cancel()
        result.cancel()
        logger.info(f"Cancelled pass request {request_id}")
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Cancel all pending requests and stop the private executor."""
        with self._lock:
            self._closed = True
            request_ids = list(self._pending)
        for request_id in request_ids:
            self.cancel(request_id)

        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        logger.info("Pass worker client shut down")

    def __enter__(self) -> "PassWorkerClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
