from __future__ import annotations

from ability_engine.registry.dto import (
    AbilitiesListPayloadDTO,
    AbilityEnvelopeDTO,
    AbilityReadDTO,
    CredentialsPayloadDTO,
)


def test_ability_read_dto_flattens_metadata() -> None:
    dto = AbilityReadDTO.model_validate(
        {
            "abilityId": "ab-2",
            "serviceName": "svc",
            "metadata": {
                "wrapper_code": "async def invoke(payload, options):\n    return None\n",
                "dependency_order": ["ab-1"],
                "static_headers": {"Accept": "application/json"},
                "request_method": "POST",
            },
            "dynamicHeaderKeys": ["svc::Authorization"],
        }
    )
    d = AbilityEnvelopeDTO.ability_to_descriptor(dto)
    assert d.code.startswith("async def invoke")
    assert d.dependency_order == ["ab-1"]
    assert d.request_method == "POST"
    assert d.static_headers[0].key == "Accept"
    assert d.static_headers[0].value_code == "'application/json'"


def test_envelope_without_wrapper_uses_ability_record() -> None:
    env = AbilityEnvelopeDTO.model_validate(
        {
            "success": True,
            "ability": {
                "abilityId": "ab-3",
                "serviceName": "svc",
                "dependencies": {"missing": [{"abilityId": "dep-1", "reference": "$dep-1.token"}]},
            },
        }
    )
    d = env.to_descriptor()
    assert d is not None
    assert d.missing_dependencies[0].ability_id == "dep-1"
    assert d.missing_dependencies[0].reference == "$dep-1.token"


def test_empty_envelope_has_no_descriptor() -> None:
    assert AbilityEnvelopeDTO.model_validate({"success": True}).to_descriptor() is None


def test_abilities_list_accepts_bare_array() -> None:
    payload = AbilitiesListPayloadDTO.model_validate([{"abilityId": "a", "serviceName": "s", "extra": 1}])
    assert payload.abilities[0].ability_id == "a"


def test_credentials_payload_prefers_plain_value() -> None:
    payload = CredentialsPayloadDTO.model_validate(
        {
            "credentials": [
                {"credentialKey": "k1", "value": "v1", "decryptedValue": "ignored"},
                {"credentialKey": "k2", "decryptedValue": "v2"},
                {"credentialKey": "k3"},
            ]
        }
    )
    assert payload.to_credential_set() == {"k1": "v1", "k2": "v2"}


def test_dynamic_headers_required_flag_is_kept_on_search_hits() -> None:
    payload = AbilitiesListPayloadDTO.model_validate(
        [
            {"abilityId": "login-x", "abilityName": "Login", "serviceName": "svc", "dynamicHeadersRequired": True},
            {"abilityId": "login-y", "abilityName": "Login", "serviceName": "svc"},
        ]
    )
    flagged, plain = [AbilityEnvelopeDTO.ability_to_descriptor(a) for a in payload.abilities]
    assert flagged.dynamic_header_keys == []
    assert flagged.requires_dynamic_headers is True
    assert flagged.requires_credentials is True
    assert plain.requires_credentials is False
