# workload_engine/functions/executor.py
"""
Bounded execution engine - runs one function invocation to completion or
timeout inside a locked-down, self-removing container.

Flow per invocation:
1. Validate runtime / limits / payload (no container exists yet)
2. Create an ephemeral container (read-only rootfs, tmpfs /tmp,
   no-new-privileges, CPU quota, auto-remove)
3. Attach the output stream, start, race exit against the deadline
4. Build the result; on timeout, cancel or error tear the container down
"""

import json
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

import requests
from docker.errors import DockerException, ImageNotFound, NotFound

from workload_engine.config import EngineSettings, RuntimeImage
from workload_engine.core.errors import (
    ConfigurationError,
    EngineUnavailable,
    ResourceNotFound,
    WorkloadError,
)
from workload_engine.core.events import MultiEventEmitter, NullEventEmitter
from workload_engine.core.events_model import LifecycleEvent
from workload_engine.core.labels import ownership_labels
from workload_engine.core.models import (
    ExecutionResult,
    FunctionSpec,
    Invocation,
    InvocationStatus,
    LogicalResource,
    ResourceKind,
)
from workload_engine.core.naming import invocation_container_name
from workload_engine.engine.best_effort import best_effort
from workload_engine.engine.client import engine_call, translate_engine_error
from workload_engine.functions.race import (
    CANCELLED,
    ENGINE_ERROR,
    EXITED,
    TIMED_OUT,
    ExitRace,
    RaceOutcome,
    run_until_settled,
)
from workload_engine.functions.runtimes import resolve_runtime
from workload_engine.functions.warm_cache import WarmContainerCache
from workload_engine.network.provisioner import NetworkProvisioner
from workload_engine.resources.limits import CPU_PERIOD, MIB

logger = logging.getLogger(__name__)

BILLING_GRANULARITY_MS = 100
MIN_BILLED_DURATION_MS = 100
FUNCTION_LABEL = "bunker.function_id"


def billed_duration(duration_ms: int) -> int:
    """Round up to the billing granularity. Never rounds down."""
    rounded = math.ceil(duration_ms / BILLING_GRANULARITY_MS) * BILLING_GRANULARITY_MS
    return max(MIN_BILLED_DURATION_MS, rounded)


def split_invocation_output(text: str) -> Tuple[Any, str]:
    """
    The last non-empty line is the result (JSON when it parses, raw text
    otherwise); everything before it is the log.
    """
    lines = text.strip().splitlines()
    if not lines:
        return None, ""

    result_line = lines[-1]
    try:
        output = json.loads(result_line)
    except ValueError:
        output = result_line
    return output, "\n".join(lines[:-1])


def _is_wait_timeout(error: Exception) -> bool:
    if isinstance(error, requests.exceptions.ReadTimeout):
        return True
    # Unix-socket transports report read timeouts as ConnectionError
    return isinstance(error, requests.exceptions.ConnectionError) and "timed out" in str(error).lower()


class _OutputDrain:
    """Collects an attach stream in the background until the container exits."""

    def __init__(self, stream):
        self._stream = stream
        self._chunks: List[bytes] = []
        self._lock = threading.Lock()
        self.failed = False
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            for chunk in self._stream:
                if isinstance(chunk, str):
                    chunk = chunk.encode("utf-8")
                with self._lock:
                    self._chunks.append(chunk)
        except (DockerException, requests.exceptions.RequestException, OSError) as e:
            logger.debug(f"Output stream ended early: {e}")
            self.failed = True

    def join(self, timeout: float) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def text(self) -> str:
        with self._lock:
            return b"".join(self._chunks).decode("utf-8", errors="replace")


@dataclass
class _Prepared:
    runtime: RuntimeImage
    timeout_ms: int
    memory_mb: int
    payload_json: str
    container_name: str


class FunctionExecutor:
    """Runs function invocations in ephemeral sandboxed containers."""

    def __init__(
        self,
        client,
        networks: NetworkProvisioner,
        *,
        runtimes: Dict[str, RuntimeImage],
        network_name: str = "bunker-functions",
        warm_cache: Optional[WarmContainerCache] = None,
        emitters: Optional[MultiEventEmitter] = None,
        default_timeout_ms: int = 30000,
        max_timeout_ms: int = 300000,
        default_memory_mb: int = 128,
        max_memory_mb: int = 1024,
        max_payload_bytes: int = 6291456,
        cpu_quota: int = 50000,
        tmpfs_size: str = "64m",
        teardown_timeout: float = 5.0,
        clock=time.monotonic,
    ):
        self._client = client
        self._networks = networks
        self._runtimes = runtimes
        self._network_name = network_name
        self._warm_cache = warm_cache
        self._emitters = emitters or MultiEventEmitter([NullEventEmitter()])
        self.default_timeout_ms = default_timeout_ms
        self.max_timeout_ms = max_timeout_ms
        self.default_memory_mb = default_memory_mb
        self.max_memory_mb = max_memory_mb
        self.max_payload_bytes = max_payload_bytes
        self._cpu_quota = cpu_quota
        self._tmpfs_size = tmpfs_size
        self._teardown_timeout = teardown_timeout
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        client,
        networks: NetworkProvisioner,
        settings: EngineSettings,
        warm_cache: Optional[WarmContainerCache] = None,
        emitters: Optional[MultiEventEmitter] = None,
    ) -> "FunctionExecutor":
        return cls(
            client,
            networks,
            runtimes=settings.runtimes,
            network_name=settings.functions_network,
            warm_cache=warm_cache,
            emitters=emitters,
            default_timeout_ms=settings.function_default_timeout_ms,
            max_timeout_ms=settings.function_max_timeout_ms,
            default_memory_mb=settings.function_default_memory_mb,
            max_memory_mb=settings.function_max_memory_mb,
            max_payload_bytes=settings.function_max_payload_bytes,
            cpu_quota=settings.function_cpu_quota,
            tmpfs_size=settings.function_tmpfs_size,
        )

    # -------------------------
    # EXECUTE
    # -------------------------

    def execute(self, spec: FunctionSpec, cancel: Optional[threading.Event] = None) -> ExecutionResult:
        """
        Run one invocation.

        Args:
            spec: Function, runtime, payload and limits
            cancel: Optional token; setting it tears the container down

        Returns:
            ExecutionResult - timeouts and non-zero exits are results

        Raises:
            EngineUnavailable: Engine unreachable before a container existed
        """
        started = self._clock()
        invocation = Invocation(
            invocation_id=uuid4().hex,
            function_id=spec.function_id,
            timeout_ms=self.default_timeout_ms if spec.timeout_ms is None else spec.timeout_ms,
        )

        try:
            prepared = self._prepare(spec, invocation)
        except ConfigurationError as e:
            logger.warning(f"[fn:{spec.function_id}] Rejected invocation: {e}")
            invocation.reject()
            result = ExecutionResult(
                success=False,
                error=str(e),
                error_code=e.code,
                duration_ms=self._elapsed_ms(started),
                billed_duration_ms=MIN_BILLED_DURATION_MS,
                invocation_id=invocation.invocation_id,
                status=invocation.status,
            )
            self._emit(LifecycleEvent.invocation_finished(spec.function_id, result))
            return result

        self._networks.ensure_network(self._network_name, purpose="functions")
        warm = self._ensure_image(spec, prepared.runtime)

        name = prepared.container_name
        container = None
        try:
            with engine_call(f"create {name}"):
                container = self._create_container(spec, invocation, prepared, warm)
            logger.info(f"[{name}] Created invocation container")
            result = self._run(container, name, invocation, prepared, started, cancel)

        except WorkloadError as e:
            if container is not None:
                self._teardown(name, container)
            elif isinstance(e, EngineUnavailable):
                raise
            if isinstance(e, ResourceNotFound) and self._warm_cache is not None:
                self._warm_cache.evict(spec.function_id, spec.runtime)

            logger.error(f"[{name}] ❌ Invocation failed: {e}")
            invocation.fail()
            duration_ms = self._elapsed_ms(started)
            result = ExecutionResult(
                success=False,
                error=str(e),
                error_code=e.code,
                duration_ms=duration_ms,
                billed_duration_ms=billed_duration(duration_ms),
                invocation_id=invocation.invocation_id,
                status=invocation.status,
            )

        except BaseException:
            # Cancellation by the caller's runtime: still never leak the container
            if container is not None:
                self._teardown(name, container)
            raise

        if self._warm_cache is not None and container is not None:
            self._warm_cache.put(spec.function_id, spec.runtime, prepared.runtime.image)

        self._emit(LifecycleEvent.invocation_finished(spec.function_id, result))
        return result

    def _prepare(self, spec: FunctionSpec, invocation: Invocation) -> _Prepared:
        runtime = resolve_runtime(self._runtimes, spec.runtime)

        timeout_ms = invocation.timeout_ms
        if timeout_ms <= 0 or timeout_ms > self.max_timeout_ms:
            raise ConfigurationError(
                f"Timeout must be between 1 and {self.max_timeout_ms}ms (got {timeout_ms})"
            )

        memory_mb = self.default_memory_mb if spec.memory_mb is None else spec.memory_mb
        if memory_mb <= 0 or memory_mb > self.max_memory_mb:
            raise ConfigurationError(
                f"Memory must be between 1 and {self.max_memory_mb}MB (got {memory_mb})"
            )

        try:
            payload_json = json.dumps(spec.payload)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Payload is not JSON serializable: {e}") from e
        if len(payload_json.encode("utf-8")) > self.max_payload_bytes:
            raise ConfigurationError(f"Payload exceeds {self.max_payload_bytes} bytes")

        return _Prepared(
            runtime=runtime,
            timeout_ms=timeout_ms,
            memory_mb=memory_mb,
            payload_json=payload_json,
            container_name=invocation_container_name(spec.function_id, invocation.invocation_id),
        )

    def _ensure_image(self, spec: FunctionSpec, runtime: RuntimeImage) -> bool:
        """
        Pull the runtime image if it is not local.

        Returns:
            True if a warm cache hit skipped the check
        """
        if self._warm_cache is not None:
            entry = self._warm_cache.get(spec.function_id, spec.runtime)
            if entry is not None and entry.image == runtime.image:
                return True

        try:
            self._client.images.get(runtime.image)
            return False
        except NotFound:
            pass
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.warning(f"[fn:{spec.function_id}] Image lookup failed for {runtime.image}: {e}")
            return False

        try:
            self._client.images.pull(runtime.image)
            logger.info(f"[fn:{spec.function_id}] Pulled runtime image {runtime.image}")
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.warning(f"[fn:{spec.function_id}] Failed to pull {runtime.image}: {e}")
        return False

    def _create_container(self, spec: FunctionSpec, invocation: Invocation, prepared: _Prepared, warm: bool):
        """
        containers.create() for the invocation.

        A warm entry can outlive the image it vouched for. The entry is then
        dropped, the image checked and pulled as on a cold start, and the
        create retried once.
        """
        image = prepared.runtime.image
        params = self._create_params(spec, invocation, prepared)
        try:
            return self._client.containers.create(image, **params)
        except ImageNotFound:
            if not warm:
                raise
            logger.info(f"[{prepared.container_name}] Warm entry stale, {image} is not local")
            self._warm_cache.evict(spec.function_id, spec.runtime)
            self._ensure_image(spec, prepared.runtime)
            return self._client.containers.create(image, **params)

    def _create_params(self, spec: FunctionSpec, invocation: Invocation, prepared: _Prepared) -> Dict[str, Any]:
        memory_bytes = prepared.memory_mb * MIB

        environment = dict(spec.env)
        environment.update({
            "BUNKER_FUNCTION_ID": spec.function_id,
            "BUNKER_INVOCATION_ID": invocation.invocation_id,
            "BUNKER_HANDLER": spec.handler or prepared.runtime.handler,
            "BUNKER_TIMEOUT": str(prepared.timeout_ms),
            "BUNKER_PAYLOAD": prepared.payload_json,
        })

        resource = LogicalResource(
            owner_id=spec.owner_id,
            resource_id=invocation.invocation_id,
            kind=ResourceKind.FUNCTION_INVOCATION,
        )
        labels = ownership_labels(resource)
        labels[FUNCTION_LABEL] = spec.function_id

        return {
            "name": prepared.container_name,
            "environment": environment,
            "labels": labels,
            "mem_limit": memory_bytes,
            "memswap_limit": memory_bytes,
            "cpu_period": CPU_PERIOD,
            "cpu_quota": self._cpu_quota,
            "network": self._network_name,
            "auto_remove": True,
            "read_only": True,
            "tmpfs": {"/tmp": f"rw,noexec,nosuid,size={self._tmpfs_size}"},
            "security_opt": ["no-new-privileges"],
        }

    # -------------------------
    # RUN
    # -------------------------

    def _run(
        self,
        container,
        name: str,
        invocation: Invocation,
        prepared: _Prepared,
        started: float,
        cancel: Optional[threading.Event],
    ) -> ExecutionResult:
        # Attach before start: with auto-remove the output is gone after exit
        with engine_call(f"attach {name}"):
            stream = container.attach(stdout=True, stderr=True, stream=True, logs=True)
        drain = _OutputDrain(stream)
        drain.start()

        timeout_s = prepared.timeout_ms / 1000

        # Wait before start too: a fast handler can exit and be auto-removed
        # before a later wait reaches the engine, losing its exit status
        race = ExitRace()
        waiting = threading.Event()
        waiter = threading.Thread(
            target=self._wait_for_exit,
            args=(container, race, waiting, timeout_s + self._teardown_timeout),
            daemon=True,
        )
        waiter.start()
        waiting.wait(self._teardown_timeout)

        with engine_call(f"start {name}"):
            container.start()

        deadline = self._clock() + timeout_s
        outcome = run_until_settled(race, deadline, self._clock, cancel)
        return self._finish(container, name, invocation, prepared, started, outcome, drain)

    def _wait_for_exit(self, container, race: ExitRace, waiting: threading.Event, timeout: float) -> None:
        try:
            waiting.set()
            # "removed" reports the exit status of an auto-removed container
            status = container.wait(timeout=timeout, condition="removed")
            race.settle(RaceOutcome(EXITED, exit_code=int(status.get("StatusCode", 1))))
        except NotFound:
            # Exited and auto-removed before the wait registered
            race.settle(RaceOutcome(EXITED, exit_code=None))
        except (DockerException, requests.exceptions.RequestException) as e:
            if _is_wait_timeout(e):
                return
            race.settle(RaceOutcome(ENGINE_ERROR, error=e))

    def _finish(
        self,
        container,
        name: str,
        invocation: Invocation,
        prepared: _Prepared,
        started: float,
        outcome: RaceOutcome,
        drain: _OutputDrain,
    ) -> ExecutionResult:
        if outcome.kind == TIMED_OUT:
            logger.warning(f"[{name}] ⏱ Timed out after {prepared.timeout_ms}ms")
            self._teardown(name, container)
            drain.join(self._teardown_timeout)
            invocation.time_out()
            # The engine-side timer is what gets billed, not the wall clock
            return ExecutionResult(
                success=False,
                error=f"Function execution timed out after {prepared.timeout_ms}ms",
                error_code="TIMEOUT",
                logs=drain.text(),
                duration_ms=prepared.timeout_ms,
                billed_duration_ms=billed_duration(prepared.timeout_ms),
                invocation_id=invocation.invocation_id,
                status=invocation.status,
            )

        if outcome.kind == CANCELLED:
            logger.warning(f"[{name}] Cancelled by caller")
            self._teardown(name, container)
            drain.join(self._teardown_timeout)
            invocation.cancel()
            duration_ms = self._elapsed_ms(started)
            return ExecutionResult(
                success=False,
                error="Function execution cancelled",
                error_code="CANCELLED",
                logs=drain.text(),
                duration_ms=duration_ms,
                billed_duration_ms=billed_duration(duration_ms),
                invocation_id=invocation.invocation_id,
                status=invocation.status,
            )

        if outcome.kind == ENGINE_ERROR:
            raise translate_engine_error(outcome.error, f"wait {name}")

        duration_ms = self._elapsed_ms(started)
        if not drain.join(self._teardown_timeout):
            logger.warning(f"[{name}] Output stream still open after exit")
        logs = drain.text()

        if outcome.exit_code == 0:
            output, log_lines = split_invocation_output(logs)
            invocation.succeed()
            logger.info(f"[{name}] ✅ Completed in {duration_ms}ms")
            return ExecutionResult(
                success=True,
                output=output,
                logs=log_lines,
                duration_ms=duration_ms,
                billed_duration_ms=billed_duration(duration_ms),
                invocation_id=invocation.invocation_id,
                status=invocation.status,
            )

        invocation.fail()
        if outcome.exit_code is None:
            error = logs or "Container exited before its exit status was observed"
        else:
            error = logs or f"Function exited with status {outcome.exit_code}"
        logger.info(f"[{name}] ❌ Exited with status {outcome.exit_code}")
        return ExecutionResult(
            success=False,
            error=error,
            error_code="EXIT_CODE",
            logs=logs,
            duration_ms=duration_ms,
            billed_duration_ms=billed_duration(duration_ms),
            invocation_id=invocation.invocation_id,
            status=invocation.status,
        )

    def _teardown(self, name: str, container) -> None:
        """Stop + force-remove even with auto-remove set. Never raises."""
        best_effort(f"[{name}] stop", container.stop, timeout=1, swallow_all=True)
        best_effort(f"[{name}] remove", container.remove, force=True, swallow_all=True)

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    def _emit(self, event: LifecycleEvent) -> None:
        self._emitters.emit([event])
