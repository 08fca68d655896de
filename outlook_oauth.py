#!/usr/bin/env python3
"""
Outlook OAuth2 Authentication Module

Handles device-code OAuth2 authentication against Microsoft Entra ID and the
small amount of Microsoft Graph access needed before a mailbox is chosen
(the signed-in user's profile). Tokens are kept in a persistent MSAL cache so a
second run, or the switch from Graph to EWS scopes, does not prompt again.
"""

import os
from typing import Callable, Dict, List, Optional

import msal
import requests

from export_errors import NotAccessibleError, RemoteFailureError


class OutlookOAuth2Client:
    """Handles OAuth2 authentication and Microsoft Graph profile access for Outlook"""

    AUTHORITY_TEMPLATE = "https://login.microsoftonline.com/{tenant}"
    GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"

    # Delegated scopes for reading own and shared mailboxes through Graph
    GRAPH_SCOPES = [
        "User.Read",
        "Mail.Read",
        "Mail.ReadBasic",
        "Mail.Read.Shared",
        "MailboxSettings.Read",
    ]

    # Exchange Web Services scope, needed for In-Place Archive access
    EWS_SCOPES = ["https://outlook.office365.com/EWS.AccessAsUser.All"]

    def __init__(self, client_id: str, tenant_id: str = "common",
                 token_cache_file: str = "outlook_token_cache.json"):
        """
        Initialize OAuth2 client for Outlook

        Args:
            client_id: Azure app registration client ID (public client)
            tenant_id: Directory (tenant) ID, or 'common'
            token_cache_file: Where the MSAL token cache is persisted
        """
        self.client_id = client_id
        self.tenant_id = tenant_id or "common"
        self.token_cache_file = token_cache_file

        self.token_cache = msal.SerializableTokenCache()
        self._load_token_cache()

        self.app = msal.PublicClientApplication(
            client_id=client_id,
            authority=self.AUTHORITY_TEMPLATE.format(tenant=self.tenant_id),
            token_cache=self.token_cache,
        )

    def _load_token_cache(self) -> None:
        """Load the persisted token cache if there is one"""
        if not self.token_cache_file or not os.path.exists(self.token_cache_file):
            return
        try:
            with open(self.token_cache_file, "r", encoding="utf-8") as f:
                self.token_cache.deserialize(f.read())
        except (OSError, ValueError) as e:
            print(f"Warning: Could not read token cache {self.token_cache_file}: {str(e)}")

    def _save_token_cache(self) -> None:
        """Persist the token cache when MSAL reports a change"""
        if not self.token_cache_file or not self.token_cache.has_state_changed:
            return
        try:
            with open(self.token_cache_file, "w", encoding="utf-8") as f:
                f.write(self.token_cache.serialize())
        except OSError as e:
            print(f"Warning: Could not write token cache {self.token_cache_file}: {str(e)}")

    def _device_code_flow(self, scopes: List[str]) -> Dict:
        """Use device code flow for authentication (recommended for CLI apps)"""
        flow = self.app.initiate_device_flow(scopes=scopes)
        if "user_code" not in flow:
            raise NotAccessibleError(
                f"Failed to create device flow: {flow.get('error_description', 'Unknown error')}",
                hint="Check AZURE_CLIENT_ID and that public client flows are enabled for the app",
            )

        print("\n📋 Device Code Authentication:")
        print(f"   {flow['message']}")
        print("   Waiting for authentication...")

        return self.app.acquire_token_by_device_flow(flow)

    def acquire_token(self, scopes: Optional[List[str]] = None) -> str:
        """
        Get an access token for the given scopes, silently from cache when possible.

        Args:
            scopes: Scopes to request; defaults to GRAPH_SCOPES

        Returns:
            str: Access token

        Raises:
            NotAccessibleError: Authentication failed or was declined
        """
        scopes = scopes or self.GRAPH_SCOPES
        result = None

        accounts = self.app.get_accounts()
        if accounts:
            result = self.app.acquire_token_silent(scopes, account=accounts[0])

        if not result or "access_token" not in result:
            result = self._device_code_flow(scopes)

        self._save_token_cache()

        if "access_token" not in result:
            raise NotAccessibleError(
                f"Authentication failed: {result.get('error_description', result.get('error', 'Unknown error'))}",
                hint="Make sure you signed in with an account that can read the mailbox",
            )
        return result["access_token"]

    def token_provider(self, scopes: Optional[List[str]] = None) -> Callable[[], str]:
        """Return a callable that yields a fresh token for the given scopes on every call"""
        return lambda: self.acquire_token(scopes)

    def get_current_user(self) -> Dict:
        """
        Get the signed-in user's profile from Microsoft Graph.

        Returns:
            Dict: Graph user resource (displayName, mail, userPrincipalName, ...)
        """
        headers = {"Authorization": f"Bearer {self.acquire_token(self.GRAPH_SCOPES)}"}
        try:
            response = requests.get(f"{self.GRAPH_ENDPOINT}/me", headers=headers, timeout=30)
        except requests.RequestException as e:
            raise RemoteFailureError(f"Graph API request error: {e}") from e

        if response.status_code != 200:
            raise RemoteFailureError(
                f"Graph API error: {response.status_code} - {response.text[:300]}",
                status_code=response.status_code,
            )
        return response.json()


def create_outlook_oauth_client(client_id: str, tenant_id: str = "common",
                                token_cache_file: str = "outlook_token_cache.json") -> OutlookOAuth2Client:
    """
    Create an Outlook OAuth2 client for the configured app registration.

    Args:
        client_id: Azure app registration client ID
        tenant_id: Tenant ID or 'common'
        token_cache_file: MSAL token cache location

    Returns:
        OutlookOAuth2Client: Configured OAuth2 client
    """
    print(f"🔑 Using app registration {client_id} (tenant: {tenant_id})")
    return OutlookOAuth2Client(client_id=client_id, tenant_id=tenant_id, token_cache_file=token_cache_file)
