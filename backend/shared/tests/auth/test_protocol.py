"""Tests for the JSON bodies exchanged with the credential authority."""

import json

import pytest
from pydantic import ValidationError

from shared.auth.protocol import U64_MAX, AuthPayload, NewClientPayload, TokenResponse


class TestNewClientPayload:
    def test_parses_secret(self):
        payload = NewClientPayload.model_validate_json('{"client_secret": "s3cret"}')
        assert payload.client_secret == "s3cret"

    def test_empty_secret_is_allowed(self):
        assert NewClientPayload.model_validate_json('{"client_secret": ""}').client_secret == ""

    @pytest.mark.parametrize(
        "body",
        ["{}", '{"client_secret": 5}', "[]", "not json"],
    )
    def test_rejects_malformed_body(self, body):
        with pytest.raises(ValidationError):
            NewClientPayload.model_validate_json(body)

    def test_ignores_unknown_fields(self):
        payload = NewClientPayload.model_validate_json('{"client_secret": "a", "client_version": 2}')
        assert payload.client_secret == "a"


class TestAuthPayload:
    def test_parses_fields(self):
        payload = AuthPayload.model_validate_json('{"client_id": 42, "client_secret": "s"}')
        assert payload.client_id == 42
        assert payload.client_secret == "s"

    def test_accepts_max_u64(self):
        payload = AuthPayload.model_validate_json(json.dumps({"client_id": U64_MAX, "client_secret": "s"}))
        assert payload.client_id == U64_MAX

    @pytest.mark.parametrize("client_id", [-1, U64_MAX + 1, "42", 1.5, None])
    def test_rejects_invalid_client_id(self, client_id):
        body = json.dumps({"client_id": client_id, "client_secret": "s"})
        with pytest.raises(ValidationError):
            AuthPayload.model_validate_json(body)

    def test_rejects_missing_secret(self):
        with pytest.raises(ValidationError):
            AuthPayload.model_validate_json('{"client_id": 42}')

    def test_ignores_unknown_fields(self):
        payload = AuthPayload.model_validate_json('{"client_id": 42, "client_secret": "s", "client_version": 2}')
        assert payload.client_id == 42
        assert payload.client_secret == "s"


class TestTokenResponse:
    def test_token_serializes_as_byte_array(self):
        response = TokenResponse.from_token_bytes(7, b"\x00\x01\xff")

        assert json.loads(response.model_dump_json()) == {"token": [0, 1, 255], "client_id": 7}

    def test_token_bytes(self):
        response = TokenResponse.model_validate_json('{"token": [1, 2, 3], "client_id": 9}')

        assert response.token_bytes == b"\x01\x02\x03"

    @pytest.mark.parametrize("token", [[256], [-1], ["a"]])
    def test_rejects_non_byte_values(self, token):
        with pytest.raises(ValidationError):
            TokenResponse.model_validate_json(json.dumps({"token": token, "client_id": 1}))

    def test_is_immutable(self):
        response = TokenResponse.from_token_bytes(7, b"\x00")
        with pytest.raises(ValidationError):
            response.client_id = 8
