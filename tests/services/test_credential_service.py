"""Tests for CredentialManager."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from b2media.app.services.credential_service import (
    AuthorizationFailedError,
    CredentialManager,
    normalize_application_key,
)
from tests.services.mock_b2 import MockB2Api


@pytest.fixture()
def manager(api, sleeps):
    return CredentialManager(
        api,
        account_id="account-1",
        application_key="secret-key",
        sleep=sleeps.append,
    )


class TestEnsureAuthorized:
    """Test lazy single-flight authorization."""

    def test_authorizes_once_and_caches(self, manager, api):
        """Test the authorization is fetched once and reused."""
        first = manager.ensure_authorized()
        second = manager.ensure_authorized()

        assert first is second
        assert api.count("authorize_account") == 1
        assert manager.download_url == "https://f001.backblazeb2.com"

    def test_retries_once_after_backoff(self, manager, api, sleeps):
        """Test a failed attempt is retried after the backoff."""
        api.authorize_failures = 1

        auth = manager.ensure_authorized()

        assert auth.authorization_token
        assert api.count("authorize_account") == 2
        assert sleeps == [0.25]

    def test_second_failure_raises(self, manager, api, sleeps):
        """Test two failed attempts raise AuthorizationFailedError."""
        api.authorize_failures = 2

        with pytest.raises(AuthorizationFailedError, match="status 401") as excinfo:
            manager.ensure_authorized()

        assert excinfo.value.status_code == 401
        assert api.count("authorize_account") == 2
        assert sleeps == [0.25]
        assert manager.authorization is None

    def test_recovers_on_later_call_after_failure(self, manager, api):
        """Test a later call starts a fresh attempt after a failure."""
        api.authorize_failures = 2
        with pytest.raises(AuthorizationFailedError):
            manager.ensure_authorized()

        auth = manager.ensure_authorized()

        assert auth is manager.authorization
        assert api.count("authorize_account") == 3

    def test_concurrent_callers_share_one_authorize_call(self, manager, api):
        """Test concurrent callers wait on one in-flight attempt."""
        gate = threading.Event()
        api.authorize_gate = gate

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(manager.ensure_authorized) for _ in range(8)]
            time.sleep(0.05)
            gate.set()
            results = [future.result(timeout=5) for future in futures]

        assert api.count("authorize_account") == 1
        assert len({auth.authorization_token for auth in results}) == 1

    def test_concurrent_callers_share_the_failure(self, api):
        """Test every waiter receives the in-flight attempt's failure."""
        gate = threading.Event()
        api.authorize_gate = gate
        api.authorize_failures = 100
        manager = CredentialManager(
            api, account_id="a", application_key="k", sleep=lambda _: None
        )

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(manager.ensure_authorized) for _ in range(4)]
            time.sleep(0.05)
            gate.set()
            errors = [future.exception(timeout=5) for future in futures]

        assert all(isinstance(err, AuthorizationFailedError) for err in errors)
        assert api.count("authorize_account") == 2

    def test_strips_quotes_from_application_key(self):
        """Test the key is sent without surrounding quotes."""
        api = MockB2Api()
        seen: dict[str, str] = {}
        original = api.authorize_account

        def capture(*, key_id, application_key):
            seen["key"] = application_key
            return original(key_id=key_id, application_key=application_key)

        api.authorize_account = capture  # type: ignore[method-assign]
        manager = CredentialManager(
            api, account_id=" account-1 ", application_key=" 'quoted-key' "
        )

        manager.ensure_authorized()

        assert seen["key"] == "quoted-key"
        assert manager.account_id == "account-1"


class TestNormalizeApplicationKey:
    """Test application key normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("key", "key"),
            ('"key"', "key"),
            ("'key'", "key"),
            ("  key\n", "key"),
            ('"key', "key"),
        ],
    )
    def test_normalizes(self, raw, expected):
        """Test whitespace and quote stripping."""
        assert normalize_application_key(raw) == expected
