"""Tests for MSAL-backed token acquisition."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from uploader.auth_provider import MsalAuthProvider
from uploader.exceptions import AuthenticationError

ACCOUNT = {'home_account_id': 'oid-1.tid-1', 'username': 'user@example.com'}
OTHER = {'home_account_id': 'oid-2.tid-1', 'username': 'other@example.com'}


@pytest.fixture
def application():
    app = Mock()
    app.get_accounts.return_value = [OTHER, ACCOUNT]
    return app


def token_result(token='abc', expires_in=3600):
    return {
        'access_token': token,
        'expires_in': expires_in,
        'id_token_claims': {'oid': 'oid-1', 'tid': 'tid-1'},
    }


@pytest.mark.asyncio
async def test_interactive_sign_in(application):
    application.acquire_token_interactive.return_value = token_result()
    provider = MsalAuthProvider(scopes=['Files.ReadWrite.All'], application=application)

    credential = await provider.acquire_interactively()

    assert credential.access_token == 'abc'
    assert credential.account == ACCOUNT
    assert credential.expires_on > datetime.now(timezone.utc)
    args, kwargs = application.acquire_token_interactive.call_args
    assert args[0] == ['Files.ReadWrite.All']
    assert 'prompt' in kwargs


@pytest.mark.asyncio
async def test_interactive_failure_raises(application):
    application.acquire_token_interactive.return_value = {
        'error': 'access_denied',
        'error_description': 'The user declined consent.',
    }
    provider = MsalAuthProvider(application=application)

    with pytest.raises(AuthenticationError, match='access_denied'):
        await provider.acquire_interactively()


@pytest.mark.asyncio
async def test_silent_refresh_forces_new_token(application):
    application.acquire_token_silent.return_value = token_result('fresh')
    provider = MsalAuthProvider(application=application)

    credential = await provider.acquire_silently(ACCOUNT)

    assert credential.access_token == 'fresh'
    _, kwargs = application.acquire_token_silent.call_args
    assert kwargs['account'] == ACCOUNT
    assert kwargs['force_refresh'] is True


@pytest.mark.asyncio
@pytest.mark.parametrize('result', [None, {'error': 'interaction_required'}])
async def test_silent_refresh_requiring_interaction_returns_none(application, result):
    application.acquire_token_silent.return_value = result
    provider = MsalAuthProvider(application=application)

    assert await provider.acquire_silently(ACCOUNT) is None


@pytest.mark.asyncio
async def test_falls_back_to_first_cached_account(application):
    result = token_result()
    result['id_token_claims'] = {}
    application.acquire_token_interactive.return_value = result
    provider = MsalAuthProvider(application=application)

    credential = await provider.acquire_interactively()

    assert credential.account == OTHER
