"""Domain models shared by every layer of the ability engine.

- ``AbilityDescriptor`` and its parts (``HeaderKey``, ``StaticHeader``,
  ``MissingDependency``) describe what the registry says an ability is.
- ``ExecutionResult`` is the outcome of one execution; its validator keeps
  ``success``, ``error`` and ``credentials_expired`` consistent.
- Batch and chain inputs (``BatchItem``, ``ChainStep``) and their aggregate
  results (``BatchResult``, ``ChainResult``).

All models serialize with camelCase aliases.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import ConfigDict, Field, field_validator, model_validator

from .base import BaseSchema

HEADER_KEY_SEPARATOR = "::"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HeaderKey(BaseSchema):
    """A secret-backed header requirement scoped to a domain.

    Registry payloads encode these as ``"domain::Header-Name"`` strings. They are
    parsed once when the descriptor is loaded and carried around typed.
    """

    model_config = ConfigDict(frozen=True)

    domain: str = Field(
        "",
        description="Domain the credential belongs to. Empty when the key carried no scope.",
        examples=["api.example.com"],
    )
    header_name: str = Field(
        ...,
        description="Bare HTTP header name the secret value is sent as.",
        min_length=1,
        examples=["Authorization", "Cookie"],
    )

    @classmethod
    def parse(cls, raw: str) -> "HeaderKey":
        if HEADER_KEY_SEPARATOR in raw:
            domain, _, name = raw.partition(HEADER_KEY_SEPARATOR)
        else:
            domain, name = "", raw
        name = name.strip()
        if not name:
            raise ValueError(f"Header key has no header name: {raw!r}")
        return cls(domain=domain.strip(), header_name=name)

    def __str__(self) -> str:
        if not self.domain:
            return self.header_name
        return f"{self.domain}{HEADER_KEY_SEPARATOR}{self.header_name}"


class StaticHeader(BaseSchema):
    key: str = Field(
        ...,
        description="Header name, optionally scoped as 'service::Header-Name'.",
        min_length=1,
        examples=["api.example.com::Accept"],
    )
    value_code: str = Field(
        ...,
        description="Restricted expression producing the header value. Callable results are called once.",
        examples=["'application/json'", "lambda: 'application/json'"],
    )

    @property
    def header_name(self) -> str:
        return self.key.rpartition(HEADER_KEY_SEPARATOR)[2].strip()


class MissingDependency(BaseSchema):
    ability_id: str = Field(..., min_length=1)
    ability_name: Optional[str] = None
    reference: Optional[str] = None


class AbilityDescriptor(BaseSchema):
    """Immutable description of an ability as fetched from the registry."""

    model_config = ConfigDict(frozen=True)

    ability_id: str = Field(..., description="Registry identifier of the ability.", min_length=1)
    ability_name: str = Field("", description="Human-readable ability name.")
    service_name: str = Field(..., description="Service the ability talks to; scopes credential expiry.", min_length=1)
    description: str = Field("", description="What the ability does.")
    code: str = Field(
        "",
        description="Python fragment defining the `invoke(payload, options)` entry point.",
    )
    static_headers: List[StaticHeader] = Field(default_factory=list)
    dynamic_header_keys: List[HeaderKey] = Field(
        default_factory=list,
        description="Ordered secret-backed headers the ability needs.",
    )
    dependency_order: List[str] = Field(
        default_factory=list,
        description="Ability IDs that must be invoked before this one.",
    )
    missing_dependencies: List[MissingDependency] = Field(default_factory=list)
    requires_dynamic_headers: bool = Field(
        False,
        description="Registry flag that the ability needs secret headers, even when no keys are listed.",
    )
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None
    request_method: Optional[str] = None
    request_url: Optional[str] = None

    @field_validator("dynamic_header_keys", mode="before")
    @classmethod
    def _parse_header_keys(cls, value: Any) -> Any:
        if value is None:
            return []
        return [HeaderKey.parse(v) if isinstance(v, str) else v for v in value]

    @property
    def requires_credentials(self) -> bool:
        return self.requires_dynamic_headers or bool(self.dynamic_header_keys)

    @property
    def credential_domains(self) -> List[str]:
        domains: List[str] = []
        for key in self.dynamic_header_keys:
            if key.domain and key.domain not in domains:
                domains.append(key.domain)
        return domains


CredentialSet = Dict[str, str]


class LoginAbility(BaseSchema):
    id: str
    name: str = ""
    description: str = ""


class SideEffectOutcome(BaseSchema):
    """Outcome of a best-effort side effect that must never fail the main result."""

    name: str = Field(..., examples=["expire_credentials", "find_login_abilities", "register_workflow"])
    ok: bool = True
    error: Optional[str] = None


class ExecutionResult(BaseSchema):
    success: bool
    status_code: Optional[int] = None
    response_body: Optional[Any] = None
    response_headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    credentials_expired: bool = False
    login_abilities: List[LoginAbility] = Field(default_factory=list)
    side_effects: List[SideEffectOutcome] = Field(default_factory=list)
    transformed: bool = False
    truncated: bool = False
    executed_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_outcome(self) -> "ExecutionResult":
        if self.success and self.error is not None:
            raise ValueError("successful result must not carry an error")
        if not self.success and not self.error:
            raise ValueError("unsuccessful result must carry an error")
        if self.credentials_expired and not (self.status_code is not None and 401 <= self.status_code <= 499):
            raise ValueError("credentials_expired requires a 401-499 status code")
        return self

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> "ExecutionResult":
        return cls(success=False, error=error, **kwargs)


class ChainStep(BaseSchema):
    ability_id: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    output_mapping: Optional[Dict[str, str]] = Field(
        None,
        description=(
            "Dot-path projections applied after this step: keys are paths read from this step's output, "
            "values are paths written into the next step's params."
        ),
        examples=[{"data.user.id": "user_id"}],
    )


class BatchItem(BaseSchema):
    ability_id: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    transform_code: Optional[str] = None


class BatchItemResult(BaseSchema):
    index: int
    ability_id: str
    result: ExecutionResult


class BatchFailure(BaseSchema):
    index: int
    ability_id: str
    type: Literal["exception", "failed"]
    error: str


class BatchResult(BaseSchema):
    total: int
    successful: int
    failed: int
    results: List[BatchItemResult] = Field(default_factory=list, description="Successful members only.")
    failures: List[BatchFailure] = Field(default_factory=list)
    aggregated_results: Union[List[Any], str, None] = Field(
        None,
        description="Merged array items of successful members; a truncated string when over the response bound.",
    )
    aggregation_truncated: bool = False
    aggregation_note: Optional[str] = None
    executed_at: datetime = Field(default_factory=_utcnow)


class ChainStepResult(BaseSchema):
    index: int
    ability_id: str
    params: Union[Dict[str, Any], str] = Field(
        default_factory=dict,
        description="Params the step ran with; a truncated string when over the response bound.",
    )
    params_truncated: bool = False
    result: ExecutionResult


class ChainResult(BaseSchema):
    success: bool
    total_steps: int
    steps_completed: int
    results: List[ChainStepResult] = Field(default_factory=list)
    final_output: Optional[Any] = None
    error: Optional[str] = None
    workflow: Optional[SideEffectOutcome] = None
    workflow_ability_id: Optional[str] = None
    executed_at: datetime = Field(default_factory=_utcnow)
