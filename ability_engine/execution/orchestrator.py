"""Ability execution orchestration.

``AbilityExecutor`` is the public entry point of the engine. It runs one
ability, a parallel batch, or a serial chain, and always hands back a
well-formed result object: registry errors, sandbox errors and transport
failures are folded into ``ExecutionResult`` / ``BatchResult`` /
``ChainResult`` instead of being raised.

Single execution pipeline::

    get descriptor -> missing dependency check -> resolve credentials
        -> sandbox invoke -> classify -> transform (success only) -> govern
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx
from pydantic import ValidationError

from ..credentials.cache import CredentialCache
from ..credentials.env import EnvCredentialSource
from ..credentials.resolver import CredentialResolver
from ..errors import ChainValidationError, TransformError
from ..registry.base import AbilityRegistry, CredentialStore
from ..registry.client import RegistryApiClient
from ..sandbox.headers import HeaderCompositor
from ..sandbox.network import FetchFunction, NetworkPrimitive
from ..sandbox.runtime import SandboxRuntime
from ..schemas.config import EngineSettings
from ..schemas.core import (
    AbilityDescriptor,
    BatchFailure,
    BatchItem,
    BatchItemResult,
    BatchResult,
    ChainResult,
    ChainStep,
    ChainStepResult,
    CredentialSet,
    ExecutionResult,
    SideEffectOutcome,
)
from .classifier import FailureClassifier
from .governor import ResponseGovernor
from .paths import get_path, set_path

NetworkFactory = Callable[[HeaderCompositor], FetchFunction]

PREVIOUS_OUTPUT_KEY = "previous_output"


class AbilityExecutor:
    """Execute abilities fetched from a registry inside the sandbox.

    Args:
        registry: Source of ability descriptors (and login ability search).
        store: Credential store used for expiry on authentication failures.
        network_factory: Builds the ``fetch`` capability for one invocation from
            its header compositor, normally ``NetworkPrimitive.bind``.
        runtime: Sandbox runtime; a default one with no visible env is used if omitted.
        resolver: Credential resolver; defaults to one over ``store`` with a fresh cache.
        classifier: Failure classifier; defaults to one over registry/store/resolver.
        governor: Response governor; defaults to a 30000 character bound.
        max_chain_steps: Upper bound on steps accepted by ``execute_ability_chain``.
    """

    def __init__(
        self,
        registry: AbilityRegistry,
        store: CredentialStore,
        *,
        network_factory: NetworkFactory,
        runtime: Optional[SandboxRuntime] = None,
        resolver: Optional[CredentialResolver] = None,
        classifier: Optional[FailureClassifier] = None,
        governor: Optional[ResponseGovernor] = None,
        max_chain_steps: int = 10,
    ) -> None:
        self._registry = registry
        self._store = store
        self._network_factory = network_factory
        self._runtime = runtime or SandboxRuntime()
        self._resolver = resolver or CredentialResolver(store)
        self._classifier = classifier or FailureClassifier(registry, store, self._resolver)
        self._governor = governor or ResponseGovernor()
        self._max_chain_steps = max_chain_steps
        self._closeables: List[Any] = []
        self._logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AbilityExecutor":
        """Wire the HTTP registry client, a fresh credential cache and the network primitive."""
        api = RegistryApiClient(
            settings.registry_base_url,
            api_key=settings.api_key,
            timeout=settings.registry_timeout_seconds,
        )
        network = NetworkPrimitive(timeout=settings.request_timeout_seconds, proxy=settings.proxy_url)
        resolver = CredentialResolver(api, cache=CredentialCache(), env=EnvCredentialSource(environ))
        executor = cls(
            api,
            api,
            network_factory=network.bind,
            runtime=SandboxRuntime(settings.sandbox_env_allowlist, secret=settings.sandbox_secret, environ=environ),
            resolver=resolver,
            governor=ResponseGovernor(settings.max_response_chars),
            max_chain_steps=settings.max_chain_steps,
        )
        executor._closeables = [api, network]
        return executor

    async def aclose(self) -> None:
        for resource in self._closeables:
            await resource.aclose()

    async def __aenter__(self) -> "AbilityExecutor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Single execution
    # ------------------------------------------------------------------

    async def execute_ability(
        self,
        ability_id: str,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        transform_code: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """Execute one ability and return its governed result. Never raises."""
        result = await self._execute_safely(
            ability_id,
            payload,
            transform_code=transform_code,
            headers=headers,
            options=options,
        )
        return self._governor.apply(result)

    async def _execute_safely(
        self,
        ability_id: str,
        payload: Optional[Mapping[str, Any]],
        **kwargs: Any,
    ) -> ExecutionResult:
        try:
            return await self._run(ability_id, payload, **kwargs)
        except Exception as e:
            return self._failure_from_exception(ability_id, e)

    def _failure_from_exception(self, ability_id: str, exc: Exception) -> ExecutionResult:
        self._logger.warning("Execution of %s failed: %s", ability_id, exc)
        self._logger.debug("Execution failure details", exc_info=exc)
        return ExecutionResult.failure(str(exc) or type(exc).__name__)

    async def _run(
        self,
        ability_id: str,
        payload: Optional[Mapping[str, Any]],
        *,
        transform_code: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """Run the pipeline and return an ungoverned result.

        Classified HTTP outcomes, missing dependencies, transport errors and
        transform errors come back as results. Registry and sandbox errors are
        raised to the caller.
        """
        descriptor = await self._registry.get_ability(ability_id)
        self._logger.debug(
            "AbilityExecutor._run: id=%s service=%s dynamic_keys=%d",
            descriptor.ability_id,
            descriptor.service_name,
            len(descriptor.dynamic_header_keys),
        )

        if descriptor.missing_dependencies:
            self._logger.info(
                "Ability %s has unresolved dependencies: %s",
                ability_id,
                [d.ability_id for d in descriptor.missing_dependencies],
            )
            return self._classifier.missing_dependencies(descriptor)

        credentials: CredentialSet = {}
        if descriptor.dynamic_header_keys:
            credentials = await self._resolver.resolve(descriptor)
            missing = [str(k) for k in descriptor.dynamic_header_keys if str(k) not in credentials]
            if missing:
                self._logger.info("Ability %s: no credential found for %s", ability_id, missing)

        compositor = HeaderCompositor(
            descriptor.static_headers,
            descriptor.dynamic_header_keys,
            credentials,
            caller_headers=headers,
        )
        fetch = self._network_factory(compositor)

        try:
            response = await self._runtime.invoke(descriptor, dict(payload or {}), options, fetch)
        except httpx.HTTPError as e:
            return self._classifier.transient(descriptor, e)

        try:
            body = await response.body()
        except httpx.HTTPError as e:
            return self._classifier.transient(descriptor, e)

        result = await self._classifier.classify(descriptor, response, body)
        if transform_code and result.success:
            result = self._transform(result, transform_code)
        return result

    def _transform(self, result: ExecutionResult, transform_code: str) -> ExecutionResult:
        try:
            transformed = self._runtime.transform(transform_code, result.response_body)
        except TransformError as e:
            self._logger.warning("Transform failed: %s", e)
            return ExecutionResult.failure(
                str(e),
                status_code=result.status_code,
                response_body=result.response_body,
                response_headers=result.response_headers,
            )
        return result.model_copy(update={"response_body": transformed, "transformed": True})

    async def get_ability_metadata(self, ability_id: str) -> Optional[Dict[str, Any]]:
        """Summarize an ability without executing it; ``None`` if it cannot be loaded."""
        try:
            ability = await self._registry.get_ability(ability_id)
        except Exception as e:
            self._logger.warning("Could not load metadata for %s: %s", ability_id, e)
            return None
        return self._metadata(ability)

    @staticmethod
    def _metadata(ability: AbilityDescriptor) -> Dict[str, Any]:
        return {
            "ability_id": ability.ability_id,
            "service_name": ability.service_name,
            "ability_name": ability.ability_name,
            "description": ability.description,
            "input_schema": ability.input_schema,
            "static_header_count": len(ability.static_headers),
            "dynamic_header_keys": [str(k) for k in ability.dynamic_header_keys],
            "requires_credentials": ability.requires_credentials,
            "dependency_order": list(ability.dependency_order),
            "missing_dependencies": [d.ability_id for d in ability.missing_dependencies],
        }

    # ------------------------------------------------------------------
    # Parallel batch
    # ------------------------------------------------------------------

    async def execute_abilities_parallel(
        self,
        items: Sequence[Union[BatchItem, Mapping[str, Any]]],
        aggregate: bool = False,
    ) -> BatchResult:
        """Run all items concurrently and wait for every one to settle."""
        batch = list(items)
        self._logger.info("Executing %d abilities in parallel", len(batch))
        outcomes = await asyncio.gather(*(self._run_item(item) for item in batch), return_exceptions=True)

        failures: List[BatchFailure] = []
        successful: List[BatchItemResult] = []
        for index, (raw, outcome) in enumerate(zip(batch, outcomes)):
            ability_id = self._item_ability_id(raw)
            if isinstance(outcome, BaseException):
                self._logger.warning("Batch item %d (%s) raised: %s", index, ability_id, outcome)
                failures.append(
                    BatchFailure(
                        index=index,
                        ability_id=ability_id,
                        type="exception",
                        error=str(outcome) or type(outcome).__name__,
                    )
                )
                continue
            if outcome.success:
                successful.append(BatchItemResult(index=index, ability_id=ability_id, result=outcome))
            else:
                failures.append(
                    BatchFailure(
                        index=index,
                        ability_id=ability_id,
                        type="failed",
                        error=outcome.error or "unknown error",
                    )
                )

        aggregated: Any = None
        aggregation_truncated = False
        note: Optional[str] = None
        if aggregate:
            merged, note = self._aggregate(successful)
            aggregated, aggregation_truncated = self._governor.govern(merged)

        return BatchResult(
            total=len(batch),
            successful=len(successful),
            failed=len(failures),
            results=[r.model_copy(update={"result": self._governor.apply(r.result)}) for r in successful],
            failures=failures,
            aggregated_results=aggregated,
            aggregation_truncated=aggregation_truncated,
            aggregation_note=note,
        )

    @staticmethod
    def _item_ability_id(item: Union[BatchItem, Mapping[str, Any]]) -> str:
        if isinstance(item, BatchItem):
            return item.ability_id
        return str(item.get("ability_id") or item.get("abilityId") or "")

    async def _run_item(self, item: Union[BatchItem, Mapping[str, Any]]) -> ExecutionResult:
        batch_item = item if isinstance(item, BatchItem) else BatchItem.model_validate(item)
        return await self._run(batch_item.ability_id, batch_item.params, transform_code=batch_item.transform_code)

    def _aggregate(self, successful: Sequence[BatchItemResult]) -> Tuple[Optional[List[Any]], Optional[str]]:
        merged: List[Any] = []
        for entry in successful:
            body = entry.result.response_body
            if isinstance(body, list):
                merged.extend(body)
                continue
            if isinstance(body, dict):
                values = next((v for v in body.values() if isinstance(v, list)), None)
                if values is not None:
                    merged.extend(values)
                    continue
            note = (
                f"Aggregation skipped: result {entry.index} ({entry.ability_id}) is not an array "
                "and has no array-valued field"
            )
            self._logger.info(note)
            return None, note
        return merged, None

    # ------------------------------------------------------------------
    # Serial chain
    # ------------------------------------------------------------------

    def _validate_chain(self, steps: Sequence[Union[ChainStep, Mapping[str, Any]]]) -> List[ChainStep]:
        if not steps:
            raise ChainValidationError("Chain must contain at least one step")
        if len(steps) > self._max_chain_steps:
            raise ChainValidationError(
                f"Chain has {len(steps)} steps; at most {self._max_chain_steps} are allowed"
            )
        try:
            return [s if isinstance(s, ChainStep) else ChainStep.model_validate(s) for s in steps]
        except ValidationError as e:
            raise ChainValidationError(f"Invalid chain step: {e}") from e

    @staticmethod
    def _forward(step: ChainStep, output: Any, next_params: Mapping[str, Any]) -> Dict[str, Any]:
        """Build the next step's params from this step's output."""
        params = copy.deepcopy(dict(next_params))
        if step.output_mapping:
            for source, target in step.output_mapping.items():
                value = get_path(output, source)
                if value is None:
                    continue
                set_path(params, target, value)
            return params
        if isinstance(output, dict):
            return {**output, **params}
        if output is not None:
            params.setdefault(PREVIOUS_OUTPUT_KEY, output)
        return params

    async def execute_ability_chain(
        self,
        steps: Sequence[Union[ChainStep, Mapping[str, Any]]],
        stop_on_error: bool = True,
        transform_code: Optional[str] = None,
        workflow_name: Optional[str] = None,
    ) -> ChainResult:
        """Run steps strictly in order, feeding each output into the next step. Never raises."""
        try:
            chain = self._validate_chain(steps)
        except ChainValidationError as e:
            self._logger.warning("Rejected chain: %s", e)
            return ChainResult(success=False, total_steps=len(steps), steps_completed=0, error=str(e))

        self._logger.info("Executing chain of %d steps (stop_on_error=%s)", len(chain), stop_on_error)
        results: List[ChainStepResult] = []
        completed = 0
        final_output: Any = None
        errors: List[str] = []
        pending: Optional[Dict[str, Any]] = None

        for index, step in enumerate(chain):
            params = pending if pending is not None else dict(step.params)
            pending = None
            result = await self._execute_safely(step.ability_id, params)
            shown_params, params_truncated = self._governor.govern(params)
            results.append(
                ChainStepResult(
                    index=index,
                    ability_id=step.ability_id,
                    params=shown_params,
                    params_truncated=params_truncated,
                    result=self._governor.apply(result),
                )
            )

            if not result.success:
                errors.append(f"Step {index + 1} ({step.ability_id}) failed: {result.error}")
                if stop_on_error:
                    self._logger.info("Chain stopped at step %d (%s)", index + 1, step.ability_id)
                    break
                continue

            completed += 1
            final_output = result.response_body
            if index + 1 < len(chain):
                pending = self._forward(step, result.response_body, chain[index + 1].params)

        success = completed == len(chain)
        error = "; ".join(errors) if errors else None

        if transform_code and final_output is not None:
            try:
                final_output = self._runtime.transform(transform_code, final_output)
            except TransformError as e:
                self._logger.warning("Chain transform failed: %s", e)
                success = False
                error = f"{error}; {e}" if error else str(e)

        governed_output, _ = self._governor.govern(final_output)
        chain_result = ChainResult(
            success=success,
            total_steps=len(chain),
            steps_completed=completed,
            results=results,
            final_output=governed_output,
            error=error,
        )

        if success and workflow_name:
            outcome, workflow_id = await self._register_workflow(workflow_name, chain)
            chain_result = chain_result.model_copy(update={"workflow": outcome, "workflow_ability_id": workflow_id})
        return chain_result

    async def _register_workflow(
        self, name: str, steps: Sequence[ChainStep]
    ) -> Tuple[SideEffectOutcome, Optional[str]]:
        try:
            response = await self._registry.register_workflow(name, steps)
        except Exception as e:
            self._logger.warning("Failed to register workflow %s: %s", name, e)
            return SideEffectOutcome(name="register_workflow", ok=False, error=str(e)), None

        workflow_id = response.get("abilityId") or response.get("id")
        ability = response.get("ability")
        if workflow_id is None and isinstance(ability, dict):
            workflow_id = ability.get("abilityId") or ability.get("id")
        self._logger.info("Registered workflow %s as %s", name, workflow_id)
        return SideEffectOutcome(name="register_workflow"), str(workflow_id) if workflow_id is not None else None
