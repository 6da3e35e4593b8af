"""
Unit tests for credential validation (src/auth.py).

These tests exercise CredentialValidator.validate() directly:

1. API key path (exact match, checked first)
2. Bearer path: signature, expiry, required claims
3. Registry membership (revocation)
4. Nothing presented

Every bearer failure must produce the same rejection, whatever the cause.
"""

import jwt
import pytest

from src.auth import (
    AUTHENTICATION_REQUIRED,
    AUTHENTICATION_REQUIRED_MESSAGE,
    INVALID_TOKEN,
    INVALID_TOKEN_MESSAGE,
    AuthMethod,
    AuthOutcome,
    CredentialValidator,
)
from tests.helpers import TEST_API_KEY, TEST_CLIENT_ID, TEST_CLIENT_SECRET, far_future

GENERIC_REJECTION = AuthOutcome.rejected(INVALID_TOKEN, INVALID_TOKEN_MESSAGE)


class TestApiKey:
    def test_valid_api_key_authenticates(self, validator):
        result = validator.validate(api_key=TEST_API_KEY)

        assert result.authenticated
        assert result.method is AuthMethod.API_KEY
        assert result.client_id is None

    @pytest.mark.parametrize(
        "presented",
        ["wrong-key", TEST_API_KEY.upper(), TEST_API_KEY + " ", TEST_API_KEY[:-1], "ключ"],
    )
    def test_api_key_must_match_exactly(self, validator, presented):
        result = validator.validate(api_key=presented)

        assert not result.authenticated
        assert result.reason == AUTHENTICATION_REQUIRED

    def test_api_key_checked_before_bearer(self, validator):
        """With a valid key, even a garbage bearer token doesn't matter."""
        result = validator.validate(api_key=TEST_API_KEY, bearer_token="not-a-real-token")

        assert result.method is AuthMethod.API_KEY

    def test_wrong_api_key_falls_through_to_bearer(self, validator, issuer):
        token = issuer.issue_token("client_credentials", TEST_CLIENT_ID, TEST_CLIENT_SECRET)

        result = validator.validate(api_key="wrong-key", bearer_token=token.access_token)

        assert result.method is AuthMethod.OAUTH2

    def test_any_configured_key_is_accepted(self, registry):
        validator = CredentialValidator(
            ["key-one", "key-two"], "unused-signing-secret-for-api-keys", registry
        )

        assert validator.validate(api_key="key-two").method is AuthMethod.API_KEY


class TestBearerToken:
    # ----- Happy path -----

    def test_issued_token_authenticates_as_oauth2(self, validator, issuer):
        token = issuer.issue_token("client_credentials", TEST_CLIENT_ID, TEST_CLIENT_SECRET)

        result = validator.validate(bearer_token=token.access_token)

        assert result == AuthOutcome.success(AuthMethod.OAUTH2, client_id=TEST_CLIENT_ID)

    # ----- Signature and structure -----

    def test_malformed_token_is_rejected_not_raised(self, validator):
        assert validator.validate(bearer_token="not-a-real-token") == GENERIC_REJECTION

    def test_wrong_signing_key_is_rejected(self, validator, registry, make_token):
        """A forged token is rejected even if an attacker got it into the registry."""
        token = make_token(secret="attacker-controlled-signing-secret")
        registry.register(token, far_future())

        assert validator.validate(bearer_token=token) == GENERIC_REJECTION

    def test_alg_none_token_is_rejected(self, validator, registry):
        token = jwt.encode(
            {"client_id": TEST_CLIENT_ID, "iat": 0, "exp": 9999999999}, None, algorithm="none"
        )
        registry.register(token, far_future())

        assert validator.validate(bearer_token=token) == GENERIC_REJECTION

    # ----- Expiration and required claims -----

    def test_expired_token_is_rejected_even_if_registered(self, validator, registry, make_token):
        token = make_token(exp_seconds=-10)
        registry.register(token, far_future())

        assert validator.validate(bearer_token=token) == GENERIC_REJECTION

    def test_token_without_exp_is_rejected(self, validator, registry, make_token):
        token = make_token(include_exp=False)
        registry.register(token, far_future())

        assert validator.validate(bearer_token=token) == GENERIC_REJECTION

    def test_token_without_client_id_is_rejected(self, validator, registry, make_token):
        token = make_token(client_id=None)
        registry.register(token, far_future())

        assert validator.validate(bearer_token=token) == GENERIC_REJECTION

    # ----- Registry membership -----

    def test_well_signed_token_not_in_registry_is_rejected(self, validator, make_token):
        token = make_token()

        assert validator.validate(bearer_token=token) == GENERIC_REJECTION

    def test_revoked_token_is_rejected(self, validator, issuer):
        token = issuer.issue_token("client_credentials", TEST_CLIENT_ID, TEST_CLIENT_SECRET)
        issuer.revoke_token(token.access_token)

        assert validator.validate(bearer_token=token.access_token) == GENERIC_REJECTION

    def test_validation_does_not_modify_registry(self, validator, issuer, registry):
        token = issuer.issue_token("client_credentials", TEST_CLIENT_ID, TEST_CLIENT_SECRET)

        validator.validate(bearer_token=token.access_token)
        validator.validate(bearer_token="not-a-real-token")

        assert len(registry) == 1

    # ----- Indistinguishability -----

    def test_all_bearer_failures_look_identical(self, validator, issuer, registry, make_token):
        revoked = issuer.issue_token("client_credentials", TEST_CLIENT_ID, TEST_CLIENT_SECRET)
        issuer.revoke_token(revoked.access_token)
        expired = make_token(exp_seconds=-10)
        registry.register(expired, far_future())

        outcomes = {
            validator.validate(bearer_token=t)
            for t in [
                revoked.access_token,
                expired,
                make_token(secret="some-other-signing-secret-entirely"),
                make_token(),
                "not-a-real-token",
            ]
        }

        assert outcomes == {GENERIC_REJECTION}


class TestNoCredentials:
    @pytest.mark.parametrize("api_key,bearer", [(None, None), ("", ""), (None, ""), ("", None)])
    def test_nothing_presented_requires_authentication(self, validator, api_key, bearer):
        result = validator.validate(api_key=api_key, bearer_token=bearer)

        assert result == AuthOutcome.rejected(AUTHENTICATION_REQUIRED, AUTHENTICATION_REQUIRED_MESSAGE)
        assert not result.authenticated
        assert result.method is None

