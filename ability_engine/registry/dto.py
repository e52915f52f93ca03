from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import Field, model_validator

from ..schemas.base import BaseDTO
from ..schemas.core import AbilityDescriptor, MissingDependency, StaticHeader

# Keys the registry nests under `metadata` on ability records.
_METADATA_KEYS = (
    "input_schema",
    "output_schema",
    "request_method",
    "request_url",
    "dependency_order",
    "static_headers",
    "wrapper_code",
)


class StaticHeaderDTO(BaseDTO):
    key: str
    value_code: str


class MissingDependencyDTO(BaseDTO):
    ability_id: str
    ability_name: Optional[str] = None
    reference: Optional[str] = None


class DependenciesDTO(BaseDTO):
    missing: List[MissingDependencyDTO] = Field(default_factory=list)


class AbilityReadDTO(BaseDTO):
    ability_id: str
    ability_name: str = ""
    service_name: str
    description: Optional[str] = None
    wrapper_code: Optional[str] = None
    static_headers: Union[List[StaticHeaderDTO], Dict[str, str], None] = None
    dynamic_header_keys: List[str] = Field(default_factory=list)
    dynamic_headers_required: bool = False
    dependency_order: List[str] = Field(default_factory=list)
    dependencies: Optional[DependenciesDTO] = None
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None
    request_method: Optional[str] = None
    request_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_metadata(cls, v):
        if not isinstance(v, dict) or not isinstance(v.get("metadata"), dict):
            return v
        nv = dict(v)
        meta = nv.pop("metadata")
        for key in _METADATA_KEYS:
            if meta.get(key) is not None and nv.get(key) is None and nv.get(_camel(key)) is None:
                nv[key] = meta[key]
        return nv


class WrapperInputDTO(BaseDTO):
    """Executable part of an ability as stored by the registry (`wrapper.input`)."""

    ability_id: str
    ability_name: str = ""
    service_name: str
    description: Optional[str] = None
    wrapper_code: str = ""
    static_headers: List[StaticHeaderDTO] = Field(default_factory=list)
    dynamic_header_keys: List[str] = Field(default_factory=list)
    dependency_order: List[str] = Field(default_factory=list)
    input_schema: Optional[Dict[str, Any]] = None
    http_method: Optional[str] = None
    url: Optional[str] = None


class WrapperDTO(BaseDTO):
    input: WrapperInputDTO
    dependencies: Optional[DependenciesDTO] = None


class AbilityEnvelopeDTO(BaseDTO):
    success: bool = True
    ability: Optional[AbilityReadDTO] = None
    wrapper: Optional[WrapperDTO] = None

    def to_descriptor(self) -> Optional[AbilityDescriptor]:
        """Build a descriptor, preferring the executable wrapper payload when present."""
        if self.wrapper is not None:
            w = self.wrapper.input
            deps = self.wrapper.dependencies or (self.ability.dependencies if self.ability else None)
            return AbilityDescriptor(
                ability_id=w.ability_id,
                ability_name=w.ability_name,
                service_name=w.service_name,
                description=w.description or (self.ability.description if self.ability else "") or "",
                code=w.wrapper_code,
                static_headers=[StaticHeader(key=h.key, value_code=h.value_code) for h in w.static_headers],
                dynamic_header_keys=list(w.dynamic_header_keys),
                dependency_order=list(w.dependency_order),
                missing_dependencies=_missing(deps),
                requires_dynamic_headers=self.ability.dynamic_headers_required if self.ability else False,
                input_schema=w.input_schema,
                output_schema=self.ability.output_schema if self.ability else None,
                request_method=w.http_method,
                request_url=w.url,
            )
        if self.ability is not None:
            return self.ability_to_descriptor(self.ability)
        return None

    @staticmethod
    def ability_to_descriptor(a: AbilityReadDTO) -> AbilityDescriptor:
        return AbilityDescriptor(
            ability_id=a.ability_id,
            ability_name=a.ability_name,
            service_name=a.service_name,
            description=a.description or "",
            code=a.wrapper_code or "",
            static_headers=_static_headers(a.static_headers),
            dynamic_header_keys=list(a.dynamic_header_keys),
            dependency_order=list(a.dependency_order),
            missing_dependencies=_missing(a.dependencies),
            requires_dynamic_headers=a.dynamic_headers_required,
            input_schema=a.input_schema,
            output_schema=a.output_schema,
            request_method=a.request_method,
            request_url=a.request_url,
        )


class AbilitiesListPayloadDTO(BaseDTO):
    abilities: List[AbilityReadDTO] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, v):
        if isinstance(v, list):
            return {"abilities": v}
        return v


class SearchAbilitiesQuery(BaseDTO):
    q: str
    limit: int = Field(30, ge=1, le=200)

    def to_params(self) -> Dict[str, str]:
        return {"q": self.q, "limit": str(self.limit)}


class CredentialEntryDTO(BaseDTO):
    credential_key: str
    credential_type: Optional[str] = None
    value: Optional[str] = None
    decrypted_value: Optional[str] = None

    @property
    def plaintext(self) -> Optional[str]:
        return self.value if self.value is not None else self.decrypted_value


class CredentialsPayloadDTO(BaseDTO):
    success: bool = True
    domain: Optional[str] = None
    credentials: List[CredentialEntryDTO] = Field(default_factory=list)

    def to_credential_set(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for entry in self.credentials:
            if entry.plaintext is not None:
                out[entry.credential_key] = entry.plaintext
        return out


class WorkflowStepDTO(BaseDTO):
    ability_id: str
    params: Dict[str, Any] = Field(default_factory=dict)
    output_mapping: Optional[Dict[str, str]] = None


class WorkflowCreateDTO(BaseDTO):
    name: str
    steps: List[WorkflowStepDTO]


def _camel(s: str) -> str:
    parts = s.split("_")
    return parts[0] + "".join(p.capitalize() for p in parts[1:])


def _missing(deps: Optional[DependenciesDTO]) -> List[MissingDependency]:
    if deps is None:
        return []
    return [
        MissingDependency(ability_id=d.ability_id, ability_name=d.ability_name, reference=d.reference)
        for d in deps.missing
    ]


def _static_headers(raw: Union[List[StaticHeaderDTO], Dict[str, str], None]) -> List[StaticHeader]:
    if not raw:
        return []
    if isinstance(raw, dict):
        # Plain name -> value maps carry literal values.
        return [StaticHeader(key=k, value_code=repr(v)) for k, v in raw.items()]
    return [StaticHeader(key=h.key, value_code=h.value_code) for h in raw]
