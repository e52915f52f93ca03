"""Ability registry REST API client

Overview
--------
Thin HTTP client for the ability registry. The same service hosts the
encrypted credential store, so one ``RegistryApiClient`` satisfies both the
``AbilityRegistry`` and ``CredentialStore`` protocols the executor depends on.

Endpoints
---------
- ``GET /abilities/{id}``: one ability with its executable wrapper payload
- ``GET /public/abilities?q=&limit=``: ability search (login suggestions)
- ``POST /my/abilities/workflows``: register a successful chain as a workflow
- ``GET /my/credentials/{domain}``: decrypted credentials for a domain
- ``DELETE /my/credentials/{domain}``: mark a domain's credentials expired

Errors
------
Non-2xx responses raise ``RegistryApiError`` with ``status_code`` and the raw
body as ``details``; an unknown ability raises ``AbilityNotFoundError``. A 404
from the credential store is a plain "no credentials" answer (``None``).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from ..schemas.core import AbilityDescriptor, ChainStep, CredentialSet
from .dto import (
    AbilitiesListPayloadDTO,
    AbilityEnvelopeDTO,
    CredentialsPayloadDTO,
    SearchAbilitiesQuery,
    WorkflowCreateDTO,
    WorkflowStepDTO,
)
from .errors import AbilityNotFoundError, RegistryApiError


class RegistryApiClient:
    """
    Thin async HTTP client for the ability registry REST API.

    Responsibilities:
    - get_ability / search_abilities / register_workflow (AbilityRegistry)
    - get_credentials / expire_credentials (CredentialStore)

    Note: credential values returned by the store are already decrypted; this
    client never handles ciphertext and never logs credential values.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._logger = logging.getLogger(__name__)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_ability(self, ability_id: str) -> AbilityDescriptor:
        url = f"{self.base_url}/abilities/{quote(ability_id, safe='')}"
        try:
            self._logger.debug("RegistryApiClient.get_ability: GET %s", url)
            r = await self._client.get(url, headers=self._headers())
            if r.status_code == 404:
                raise AbilityNotFoundError(ability_id)
            r.raise_for_status()
        except AbilityNotFoundError:
            raise
        except httpx.HTTPStatusError as e:
            raise RegistryApiError(
                f"Registry get_ability failed: {e.response.status_code}",
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        data = r.json()
        if not isinstance(data, dict):
            raise RegistryApiError("Unexpected response shape from get_ability", status_code=r.status_code, details=data)
        envelope = AbilityEnvelopeDTO.model_validate(data)
        descriptor = envelope.to_descriptor() if envelope.success else None
        if descriptor is None:
            raise AbilityNotFoundError(ability_id)
        self._logger.debug(
            "RegistryApiClient.get_ability: resolved id=%s service=%s dynamic_keys=%d",
            descriptor.ability_id,
            descriptor.service_name,
            len(descriptor.dynamic_header_keys),
        )
        return descriptor

    async def search_abilities(self, query: str, *, limit: int = 30) -> List[AbilityDescriptor]:
        q = SearchAbilitiesQuery(q=query, limit=limit)
        params = q.to_params()
        try:
            self._logger.debug("RegistryApiClient.search_abilities: GET %s/public/abilities params=%s", self.base_url, params)
            r = await self._client.get(f"{self.base_url}/public/abilities", headers=self._headers(), params=params)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RegistryApiError(
                f"Registry search_abilities failed: {e.response.status_code}",
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        payload = AbilitiesListPayloadDTO.model_validate(r.json())
        abilities = [AbilityEnvelopeDTO.ability_to_descriptor(a) for a in payload.abilities]
        self._logger.debug("RegistryApiClient.search_abilities: got %d abilities", len(abilities))
        return abilities

    async def register_workflow(self, name: str, steps: Sequence[ChainStep]) -> Dict[str, Any]:
        payload = WorkflowCreateDTO(
            name=name,
            steps=[
                WorkflowStepDTO(ability_id=s.ability_id, params=s.params, output_mapping=s.output_mapping)
                for s in steps
            ],
        )
        try:
            self._logger.debug(
                "RegistryApiClient.register_workflow: POST %s/my/abilities/workflows name=%s steps=%d",
                self.base_url,
                name,
                len(steps),
            )
            r = await self._client.post(
                f"{self.base_url}/my/abilities/workflows",
                headers=self._headers(),
                json=payload.model_dump(by_alias=True, mode="json"),
            )
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RegistryApiError(
                f"Registry register_workflow failed: {e.response.status_code}",
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        is_json = r.headers.get("content-type", "application/json").startswith("application/json")
        raw = r.json() if r.content and is_json else {}
        return raw if isinstance(raw, dict) else {}

    async def get_credentials(self, domain: str) -> Optional[CredentialSet]:
        url = f"{self.base_url}/my/credentials/{quote(domain, safe='')}"
        try:
            self._logger.debug("RegistryApiClient.get_credentials: GET %s", url)
            r = await self._client.get(url, headers=self._headers())
            if r.status_code == 404:
                return None
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RegistryApiError(
                f"Registry get_credentials failed: {e.response.status_code}",
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        payload = CredentialsPayloadDTO.model_validate(r.json())
        if not payload.success:
            return None
        creds = payload.to_credential_set()
        self._logger.debug("RegistryApiClient.get_credentials: domain=%s keys=%d", domain, len(creds))
        return creds or None

    async def expire_credentials(self, domain: str) -> Dict[str, Any]:
        url = f"{self.base_url}/my/credentials/{quote(domain, safe='')}"
        try:
            self._logger.debug("RegistryApiClient.expire_credentials: DELETE %s", url)
            r = await self._client.delete(url, headers=self._headers())
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RegistryApiError(
                f"Registry expire_credentials failed: {e.response.status_code}",
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        data = r.json() if r.content else {}
        deleted = data.get("deletedCount", 0) if isinstance(data, dict) else 0
        return {
            "success": bool(data.get("success", True)) if isinstance(data, dict) else True,
            "message": f"Deleted {deleted} credentials for {domain}",
        }
