"""Periodic synchronization of one Kubernetes Secret."""
import asyncio
import logging
import re
from typing import Any, Callable, Mapping, Optional, Set
from kubernetes.client.rest import ApiException

from ..domains.models import LAST_POLL_ANNOTATION, OwnerReference, SecretDescriptor, now_ms
from ..domains.metrics import SyncMetrics
from .upsert import upsert_secret

logger = logging.getLogger(__name__)

NOT_FOUND = 404

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class Poller:
    """
    Keeps one Kubernetes Secret in sync with its backend.

    The poller holds at most one pending timer. Each cycle upserts the Secret
    and then re-arms the timer for a full interval, whether or not the cycle
    succeeded. On start it derives the remaining wait from the last-poll
    annotation stored on the Secret, so a restart does not refetch early.
    """

    def __init__(
        self,
        backends: Mapping[str, Any],
        interval_ms: int,
        store: Any,
        namespace: str,
        descriptor: SecretDescriptor,
        owner_reference: OwnerReference,
        clock: Callable[[], int] = now_ms,
        metrics: Optional[SyncMetrics] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._backends = backends
        self._interval_ms = interval_ms
        self._store = store
        self._namespace = namespace
        self._descriptor = descriptor
        self._owner_reference = owner_reference
        self._clock = clock
        self._metrics = metrics
        self._loop = loop
        self._timer: Optional[asyncio.TimerHandle] = None
        self._startup: Optional[asyncio.Task] = None
        self._cycle: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def descriptor(self) -> SecretDescriptor:
        return self._descriptor

    @property
    def is_pending(self) -> bool:
        """True while a timer handle is held."""
        return self._timer is not None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _spawn(self, coro) -> asyncio.Task:
        # Keep a reference so the task is not garbage collected mid-flight
        task = self._get_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _observe(self, status: str) -> None:
        if self._metrics is None:
            return
        self._metrics.observe_sync(
            name=self._descriptor.name,
            namespace=self._namespace,
            backend=self._descriptor.backend_type,
            status=status,
        )

    async def poll(self) -> None:
        """Run one sync cycle. Never raises; always arms the next timer."""
        name = self._descriptor.name
        logger.info(f"running poll for {name} in {self._namespace}")

        try:
            await upsert_secret(
                self._descriptor,
                self._namespace,
                store=self._store,
                backends=self._backends,
                owner_reference=self._owner_reference,
                clock=self._clock,
            )
        except Exception as e:
            logger.error(f"failure while polling secret {name} in {self._namespace}: {e}", exc_info=e)
            self._observe("error")
        else:
            logger.info(f"polled secret {name} in {self._namespace}")
            self._observe("success")

        self._set_next_poll()

    async def check_for_secret(self) -> None:
        """
        Poll now if the Secret is missing, otherwise wait out its interval.

        Read failures other than not found are logged and leave the poller
        without a timer.
        """
        name = self._descriptor.name

        try:
            secret = await self._store.read_secret(self._namespace, name)
        except ApiException as e:
            if e.status == NOT_FOUND:
                logger.info(f"Secret {name} does not exist in {self._namespace}, polling right away")
                await self.poll()
                return
            logger.error(f"Failed to read secret {name} in {self._namespace}: {e.reason} (status {e.status})", exc_info=e)
            return
        except Exception as e:
            logger.error(f"Failed to read secret {name} in {self._namespace}: {e}", exc_info=e)
            return

        metadata = (secret or {}).get("metadata") or {}
        annotations = metadata.get("annotations") or {}
        raw_last_poll = annotations.get(LAST_POLL_ANNOTATION) or "0"
        # Leading integer only, so "1700000000000.0" reads as 1700000000000
        match = _LEADING_INT.match(raw_last_poll)
        if match:
            last_poll = int(match.group(1))
        else:
            logger.warning(f"Ignoring malformed {LAST_POLL_ANNOTATION} value {raw_last_poll!r} on {name}")
            last_poll = 0

        next_poll_in = max(last_poll + self._interval_ms - self._clock(), 0)
        self._set_next_poll(next_poll_in)

    def _on_timer(self) -> None:
        self._cycle = self._spawn(self.poll())

    def _set_next_poll(self, next_poll_in: Optional[int] = None) -> None:
        """Arm the timer, replacing any previous one."""
        if next_poll_in is None:
            next_poll_in = self._interval_ms

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        self._timer = self._get_loop().call_later(next_poll_in / 1000, self._on_timer)
        logger.debug(f"Next poll for {self._descriptor.name} in {self._namespace} in {next_poll_in}ms")

    def start(self, force_poll: bool = False) -> "Poller":
        """
        Start polling. Must be called from a running event loop.

        Args:
            force_poll: Poll right away instead of honouring the last-poll annotation

        Returns:
            This poller
        """
        if self._timer is not None:
            return self
        if self._startup is not None and not self._startup.done():
            return self
        if self._cycle is not None and not self._cycle.done():
            return self

        logger.debug(f"starting poller for {self._descriptor.name} in {self._namespace}")

        if force_poll:
            self._startup = self._spawn(self.poll())
        else:
            self._startup = self._spawn(self.check_for_secret())

        return self

    def stop(self) -> "Poller":
        """Cancel the pending timer. A cycle already running is not interrupted."""
        if self._timer is None:
            return self
        logger.debug(f"stopping poller for {self._descriptor.name} in {self._namespace}")
        self._timer.cancel()
        self._timer = None
        return self
