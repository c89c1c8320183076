"""OAuth token acquisition backed by MSAL's public client flows."""

import asyncio
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Dict, Optional, Sequence

import msal

from common.constants import DEFAULT_AUTHORITY, DEFAULT_CLIENT_ID, DEFAULT_SCOPES
from common.logging_config import get_logger
from common.types import Credential
from uploader.exceptions import AuthenticationError

logger = get_logger(__name__)


class MsalAuthProvider:
    """
    Acquires Graph tokens for a signed-in user.

    MSAL is synchronous, so every call runs in the default executor.
    """

    def __init__(
        self,
        client_id: str = DEFAULT_CLIENT_ID,
        authority: str = DEFAULT_AUTHORITY,
        scopes: Sequence[str] = DEFAULT_SCOPES,
        application: Optional[Any] = None,
    ):
        self.scopes = list(scopes)
        self.application = application or msal.PublicClientApplication(
            client_id,
            authority=authority,
        )

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def _to_credential(self, result: Dict[str, Any]) -> Credential:
        expires_in = int(result.get('expires_in', 0))
        expires_on = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        return Credential(
            access_token=result['access_token'],
            expires_on=expires_on,
            account=self._find_account(result),
        )

    def _find_account(self, result: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Match the signed-in identity against MSAL's account cache."""
        claims = result.get('id_token_claims') or {}
        home_account_id = None
        if claims.get('oid') and claims.get('tid'):
            home_account_id = f"{claims['oid']}.{claims['tid']}"

        accounts = self.application.get_accounts()
        for account in accounts:
            if home_account_id and account.get('home_account_id') == home_account_id:
                return account
        return accounts[0] if accounts else None

    async def acquire_silently(self, account: Dict[str, Any]) -> Optional[Credential]:
        """
        Refresh the token for a previously authenticated account.

        Args:
            account: MSAL account dictionary from an earlier credential

        Returns:
            New credential, or None when MSAL requires user interaction
        """
        result = await self._run(
            self.application.acquire_token_silent,
            self.scopes,
            account=account,
            force_refresh=True,
        )
        if not result or 'access_token' not in result:
            if result:
                logger.info(f"Silent acquisition declined [error={result.get('error')}]")
            return None
        return self._to_credential(result)

    async def acquire_interactively(self) -> Credential:
        """
        Run the interactive browser flow.

        Raises:
            AuthenticationError: If the flow does not yield an access token
        """
        logger.info("Starting interactive sign-in")
        result = await self._run(
            self.application.acquire_token_interactive,
            self.scopes,
            prompt=msal.Prompt.SELECT_ACCOUNT,
        )
        if not result or 'access_token' not in result:
            error = (result or {}).get('error', 'unknown_error')
            description = (result or {}).get('error_description', '')
            raise AuthenticationError(f"Interactive sign-in failed: {error} {description}".strip())
        return self._to_credential(result)
