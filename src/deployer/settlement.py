"""Wait for a Deployment rollout to settle.

After a Deployment is created or replaced, the watcher blocks until the
API server reports no unavailable replicas or a deadline passes:

    INITIALIZING -> SETTLED                     (already healthy)
    INITIALIZING -> OBSERVING -> SETTLED        (healthy event seen)
    INITIALIZING -> OBSERVING -> TIMED_OUT      (deadline first)
    any          -> FAILED                      (API or watch failure)

While OBSERVING, the deadline races the next watch event; there is no
polling in between. The watch is released on every exit path.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any

from kubernetes.client import ApiClient, AppsV1Api
from kubernetes.client.exceptions import ApiException
from kubernetes.watch import Watch

from .config import DEFAULT_SETTLE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# The server ends the watch this long after the local deadline, and the
# client gives up on a blocked read after twice as long
WATCH_TIMEOUT_SLACK_SECONDS = 10


class SettlementState(str, Enum):
    """States of the settlement state machine."""

    INITIALIZING = "initializing"
    OBSERVING = "observing"
    SETTLED = "settled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


STATE_LABELS: dict[SettlementState, str] = {
    SettlementState.SETTLED: "Updated",
    SettlementState.FAILED: "Failed",
    SettlementState.TIMED_OUT: "Timed out",
}


@dataclass(frozen=True)
class SettlementOutcome:
    """Terminal result of waiting on a rollout.

    Attributes:
        state: One of SETTLED, FAILED or TIMED_OUT.
        label: Human-readable status.
        events_consumed: Watch events read before reaching the state.
        unavailable_replicas: Last observed unavailable replica count.
    """

    state: SettlementState
    label: str
    events_consumed: int = 0
    unavailable_replicas: int | None = None

    @property
    def settled(self) -> bool:
        return self.state == SettlementState.SETTLED


class SettlementError(Exception):
    """Raised when a rollout does not settle.

    Carries the terminal outcome for reporting.
    """

    def __init__(self, message: str, outcome: SettlementOutcome) -> None:
        super().__init__(message)
        self.outcome = outcome


class SettlementTimeoutError(SettlementError):
    """Raised when the deadline passes before the rollout settles."""

    pass


def _outcome(
    state: SettlementState,
    events_consumed: int = 0,
    unavailable_replicas: int | None = None,
) -> SettlementOutcome:
    return SettlementOutcome(
        state=state,
        label=STATE_LABELS[state],
        events_consumed=events_consumed,
        unavailable_replicas=unavailable_replicas,
    )


def unavailable_replicas(deployment: Any) -> int:
    """Read ``status.unavailableReplicas`` from a Deployment.

    The API omits the field when it is zero, so a missing status or field
    counts as zero.
    """
    status = getattr(deployment, "status", None)
    if status is None:
        return 0
    return getattr(status, "unavailable_replicas", None) or 0


class RolloutSubscription:
    """A watch on one Deployment, pulled one event at a time.

    Entering the subscription sends the watch request, so a rejected watch
    surfaces before anything else is read. The request carries no
    resourceVersion: the server begins the stream with the object's current
    state and no change after opening is lost. Events are pulled on a
    single worker thread owned by the subscription.
    """

    def __init__(
        self,
        api: AppsV1Api,
        namespace: str,
        name: str,
        timeout_seconds: int,
    ) -> None:
        self._api = api
        self._namespace = namespace
        self._name = name
        self._timeout_seconds = timeout_seconds
        self._watch: Watch | None = None
        self._response: Any = None
        self._stream: Iterator[dict[str, Any] | None] | None = None
        self._started = False
        self._executor: ThreadPoolExecutor | None = None

    async def __aenter__(self) -> RolloutSubscription:
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self.open)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def open(self) -> None:
        """Send the watch request.

        Raises:
            ApiException: If the server rejects the watch.
        """
        request = {
            "field_selector": f"metadata.name={self._name}",
            "timeout_seconds": self._timeout_seconds + WATCH_TIMEOUT_SLACK_SECONDS,
            "_request_timeout": self._timeout_seconds + 2 * WATCH_TIMEOUT_SLACK_SECONDS,
        }
        response = self._api.list_namespaced_deployment(
            self._namespace, watch=True, _preload_content=False, **request
        )

        self._response = response
        self._watch = Watch(return_type="V1Deployment")
        self._stream = self._watch.stream(lambda *args, **kwargs: response, **request)
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"watch-{self._name}"
        )
        logger.debug(
            "Opened deployment watch",
            extra={"namespace": self._namespace, "resource": self._name},
        )

    def _pull(self) -> dict[str, Any] | None:
        self._started = True
        # Blank keep-alive lines come through as None
        for event in self._stream:
            if event is not None:
                return event
        return None

    async def next_event(self) -> dict[str, Any] | None:
        """Wait for the next watch event; None once the stream has ended.

        Raises:
            ApiException: If the server sends an ERROR event.
        """
        if self._executor is None:
            raise RuntimeError("RolloutSubscription must be opened before reading")
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self._executor, self._pull)

    def close(self) -> None:
        if self._watch is not None:
            # Shuts down the socket under a blocked read
            self._watch.stop()
        if self._response is not None and not self._started:
            # The stream never ran, so nothing else releases the response
            self._response.close()
            self._response.release_conn()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self._watch = None
        self._response = None
        self._executor = None
        logger.debug(
            "Closed deployment watch",
            extra={"namespace": self._namespace, "resource": self._name},
        )


class SettlementWatcher:
    """Blocks until a Deployment has no unavailable replicas."""

    def __init__(self, api_client: ApiClient) -> None:
        self._api = AppsV1Api(api_client)

    def subscribe(self, namespace: str, name: str, timeout_seconds: int) -> RolloutSubscription:
        return RolloutSubscription(self._api, namespace, name, timeout_seconds)

    async def await_settlement(
        self,
        namespace: str,
        name: str,
        timeout_seconds: int = DEFAULT_SETTLE_TIMEOUT_SECONDS,
    ) -> SettlementOutcome:
        """Wait until the Deployment settles, fails or times out.

        Args:
            namespace: Namespace of the Deployment.
            name: Name of the Deployment.
            timeout_seconds: Deadline for the OBSERVING state.

        Returns:
            A SETTLED outcome.

        Raises:
            SettlementTimeoutError: If the deadline passes first.
            SettlementError: If the watch ends before the rollout settles.
            ApiException: If the server rejects or aborts the watch, or the
                status read fails.
        """
        context = {"namespace": namespace, "resource": name}
        loop = asyncio.get_event_loop()

        try:
            async with self.subscribe(namespace, name, timeout_seconds) as subscription:
                live = await loop.run_in_executor(
                    None,
                    functools.partial(self._api.read_namespaced_deployment, name, namespace),
                )
                unavailable = unavailable_replicas(live)
                logger.info(
                    "Unavailable replicas",
                    extra={**context, "unavailable_replicas": unavailable},
                )
                if unavailable == 0:
                    outcome = _outcome(SettlementState.SETTLED, 0, unavailable)
                else:
                    outcome = await self._observe(
                        subscription, name, timeout_seconds, unavailable
                    )
        except SettlementError as e:
            logger.error(
                str(e),
                extra={**context, "state": e.outcome.state.value, "status": e.outcome.label},
            )
            raise
        except ApiException as e:
            logger.error(
                "Deployment watch failed",
                extra={
                    **context,
                    "state": SettlementState.FAILED.value,
                    "status": STATE_LABELS[SettlementState.FAILED],
                    "status_code": e.status,
                },
            )
            raise

        logger.info(
            "Deployment settled",
            extra={
                **context,
                "state": outcome.state.value,
                "status": outcome.label,
                "events_consumed": outcome.events_consumed,
            },
        )
        return outcome

    async def _observe(
        self,
        subscription: RolloutSubscription,
        name: str,
        timeout_seconds: int,
        unavailable: int,
    ) -> SettlementOutcome:
        loop = asyncio.get_event_loop()
        deadline = loop.time() + timeout_seconds
        events_consumed = 0

        logger.info(
            "Watching deployment until no unavailable replicas",
            extra={
                "resource": name,
                "state": SettlementState.OBSERVING.value,
                "timeout_seconds": timeout_seconds,
            },
        )

        while True:
            remaining = deadline - loop.time()
            try:
                event = await asyncio.wait_for(subscription.next_event(), timeout=remaining)
            except TimeoutError:
                raise SettlementTimeoutError(
                    "Deployment watcher timed out. Something is wrong",
                    _outcome(SettlementState.TIMED_OUT, events_consumed, unavailable),
                ) from None

            if event is None:
                raise SettlementError(
                    "Deployment watch closed before the rollout settled",
                    _outcome(SettlementState.FAILED, events_consumed, unavailable),
                )

            events_consumed += 1

            deployment = event.get("object")
            metadata = getattr(deployment, "metadata", None)
            if metadata is not None and metadata.name != name:
                continue

            unavailable = unavailable_replicas(deployment)
            if unavailable == 0:
                return _outcome(SettlementState.SETTLED, events_consumed, unavailable)

            logger.info(
                "Unavailable replicas",
                extra={"resource": name, "unavailable_replicas": unavailable},
            )
