"""
Graph Directory Gateway

Live gateway over the Microsoft Graph REST API.

PRINCIPLES:
===========
1. The HTTP client arrives fully configured (base URL, credentials)
2. Every transport or HTTP failure surfaces as TransientDirectoryError
3. Paged responses are followed through @odata.nextLink
4. Group ids are remembered by name to save a lookup per call
"""

from __future__ import annotations
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional
from urllib.parse import quote
import logging

import httpx

from ..contracts.base import ErrorCode, TransientDirectoryError
from ..contracts.directory import (
    USER_PRINCIPAL, AppUser, DirectoryMember, GroupSnapshot, SecurityGroup,
)
from . import DirectoryGateway
from .names import GroupNames


logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GROUP_FIELDS = "id,displayName,description"
USER_FIELDS = "id,displayName,mail,userPrincipalName,otherMails"
PAGE_SIZE = 999

# Graph caps $expand=members at this many entries per group
EXPAND_LIMIT = 20

DESCRIPTION_MAX = 1024
MAIL_NICKNAME_MAX = 64


# =============================================================================
# SANITIZERS
# =============================================================================

def escape_odata(value: str) -> str:
    """Escape a value for use inside an OData string literal."""
    return value.replace("'", "''")


def sanitize_description(description: Optional[str]) -> Optional[str]:
    """Drop control characters, trim, cap length. Blank becomes None."""
    if description is None or not description.strip():
        return None
    clean = "".join(ch for ch in description if ch.isprintable() or ch == " ").strip()
    clean = clean[:DESCRIPTION_MAX]
    return clean or None


def sanitize_mail_nickname(name: str) -> str:
    chars = [ch if ch.isalnum() or ch in ".-_" else "-" for ch in name]
    nick = "".join(chars)[:MAIL_NICKNAME_MAX].rstrip("-")
    return nick or "group"


def _email_of(item: Dict[str, Any]) -> str:
    if item.get("mail") and str(item["mail"]).strip():
        return item["mail"]
    other = item.get("otherMails") or []
    if other:
        return other[0]
    return item.get("userPrincipalName") or ""


def _principal_type(item: Dict[str, Any]) -> str:
    odata_type = item.get("@odata.type") or ""
    return odata_type.rsplit(".", 1)[-1] if odata_type else ""


def _to_app_user(item: Dict[str, Any]) -> AppUser:
    email = _email_of(item)
    return AppUser(
        id=item.get("id") or email,
        display_name=item.get("displayName") or email,
        email=email
    )


def _to_member(item: Dict[str, Any]) -> DirectoryMember:
    return DirectoryMember(
        id=item.get("id") or "",
        principal_type=_principal_type(item),
        display_name=item.get("displayName") or "",
        email=_email_of(item)
    )


# =============================================================================
# GATEWAY
# =============================================================================

class GraphDirectoryGateway(DirectoryGateway):
    """
    Directory gateway backed by Graph.

    GUARANTEES:
    ===========
    1. ensure_group never creates a duplicate of an existing name
    2. MemberCount failures degrade to 0, never raise
    3. Unknown groups or users make remove/check calls no-ops
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        names: GroupNames,
        invite_redirect_url: str = "https://localhost/"
    ):
        self._client = client
        self._names = names
        self._invite_redirect_url = invite_redirect_url
        self._group_id_by_name: Dict[str, str] = {}

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransientDirectoryError(
                f"Directory rejected {method} {e.request.url.path}: HTTP {status}",
                ErrorCode.DIRECTORY_REJECTED,
                status=str(status)
            ) from e
        except httpx.TransportError as e:
            raise TransientDirectoryError(
                f"Directory unreachable for {method} {url}: {e}",
                ErrorCode.DIRECTORY_UNAVAILABLE
            ) from e

    async def _get_json(self, url: str, **kwargs) -> Dict[str, Any]:
        response = await self._request("GET", url, **kwargs)
        return response.json()

    async def _paged(self, url: str, params: Optional[Dict[str, Any]] = None) -> AsyncIterator[Dict[str, Any]]:
        page = await self._get_json(url, params=params)
        while True:
            for item in page.get("value") or []:
                yield item
            next_link = page.get("@odata.nextLink")
            if not next_link:
                break
            page = await self._get_json(next_link)

    def _cache_group_id(self, name: str, group_id: Optional[str]):
        if name and group_id:
            self._group_id_by_name[name.casefold()] = group_id

    def _directory_object_url(self, object_id: str) -> str:
        return f"{str(self._client.base_url).rstrip('/')}/directoryObjects/{object_id}"

    # =========================================================================
    # GROUPS
    # =========================================================================

    async def _find_group(self, group_name: str) -> Optional[Dict[str, Any]]:
        page = await self._get_json("/groups", params={
            "$select": GROUP_FIELDS,
            "$filter": f"displayName eq '{escape_odata(group_name)}'",
            "$top": 1,
        })
        items = page.get("value") or []
        return items[0] if items else None

    async def _resolve_group_id(self, group_name: str) -> Optional[str]:
        cached = self._group_id_by_name.get(group_name.casefold())
        if cached:
            return cached
        group = await self._find_group(group_name)
        if not group or not group.get("id"):
            return None
        self._cache_group_id(group_name, group["id"])
        return group["id"]

    async def _count_members(self, group_id: str) -> int:
        try:
            page = await self._get_json(
                f"/groups/{group_id}/members",
                params={"$count": "true", "$top": 1},
                headers={"ConsistencyLevel": "eventual"}
            )
        except TransientDirectoryError:
            return 0
        count = page.get("@odata.count")
        if isinstance(count, int):
            return count
        return len(page.get("value") or [])

    def _to_group(self, item: Dict[str, Any], member_count: int) -> SecurityGroup:
        return SecurityGroup(
            id=item["id"],
            name=item.get("displayName") or "",
            description=item.get("description"),
            member_count=member_count
        )

    def _prefix_filter(self) -> str:
        return f"startswith(displayName,'{escape_odata(self._names.prefix)}')"

    async def list_groups(self) -> List[SecurityGroup]:
        groups = []
        params = {"$select": GROUP_FIELDS, "$top": PAGE_SIZE, "$filter": self._prefix_filter()}
        async for item in self._paged("/groups", params):
            count = await self._count_members(item["id"])
            groups.append(self._to_group(item, count))
            self._cache_group_id(item.get("displayName") or "", item["id"])
        return groups

    async def list_group_snapshots(self) -> List[GroupSnapshot]:
        snapshots = []
        params = {
            "$select": GROUP_FIELDS,
            "$top": PAGE_SIZE,
            "$filter": self._prefix_filter(),
            "$expand": f"members($select={USER_FIELDS})",
        }
        async for item in self._paged("/groups", params):
            raw_members = item.get("members") or []
            if len(raw_members) >= EXPAND_LIMIT:
                raw_members = [m async for m in self._paged(
                    f"/groups/{item['id']}/members", {"$top": PAGE_SIZE}
                )]
            members = tuple(_to_member(m) for m in raw_members)
            self._cache_group_id(item.get("displayName") or "", item["id"])
            snapshots.append(GroupSnapshot(
                group=self._to_group(item, len(members)),
                members=members
            ))
        return snapshots

    async def get_group_by_name(self, group_name: str) -> Optional[SecurityGroup]:
        item = await self._find_group(group_name)
        if item is None:
            return None
        return self._to_group(item, await self._count_members(item["id"]))

    async def ensure_group(self, group_name: str, description: Optional[str] = None) -> SecurityGroup:
        existing = await self._find_group(group_name)
        if existing is not None:
            self._cache_group_id(group_name, existing["id"])
            return self._to_group(existing, await self._count_members(existing["id"]))

        body: Dict[str, Any] = {
            "displayName": group_name,
            "mailEnabled": False,
            "securityEnabled": True,
            "groupTypes": [],
            "mailNickname": sanitize_mail_nickname(group_name),
        }
        safe_description = sanitize_description(description)
        if safe_description is not None:
            body["description"] = safe_description

        created = (await self._request("POST", "/groups", json=body)).json()
        if not created or not created.get("id"):
            raise TransientDirectoryError(
                f"Failed to create group {group_name}",
                ErrorCode.DIRECTORY_REJECTED,
                group=group_name
            )
        self._cache_group_id(group_name, created["id"])
        logger.info("Created security group %s", group_name)
        return SecurityGroup(
            id=created["id"],
            name=created.get("displayName") or group_name,
            description=created.get("description"),
            member_count=0
        )

    async def delete_group_by_name(self, group_name: str) -> None:
        group_id = await self._resolve_group_id(group_name)
        if group_id is None:
            return
        await self._request("DELETE", f"/groups/{group_id}")
        self._group_id_by_name.pop(group_name.casefold(), None)

    # =========================================================================
    # USERS
    # =========================================================================

    async def _resolve_user(self, email: str) -> Optional[AppUser]:
        """Direct lookup first; only a 404 falls back to the mail filter."""
        try:
            user = await self._get_json(
                f"/users/{quote(email, safe='@.')}",
                params={"$select": USER_FIELDS}
            )
            return _to_app_user(user)
        except TransientDirectoryError as e:
            if dict(e.error.context).get("status") != "404":
                raise

        escaped = escape_odata(email)
        page = await self._get_json("/users", params={
            "$select": USER_FIELDS,
            "$top": 1,
            "$filter": (
                f"mail eq '{escaped}' or userPrincipalName eq '{escaped}' "
                f"or otherMails/any(c:c eq '{escaped}')"
            ),
        })
        items = page.get("value") or []
        return _to_app_user(items[0]) if items else None

    async def search_users(self, query: str) -> List[AppUser]:
        escaped = escape_odata(query)
        page = await self._get_json("/users", params={
            "$select": USER_FIELDS,
            "$top": 20,
            "$filter": (
                f"startswith(mail,'{escaped}') or startswith(userPrincipalName,'{escaped}') "
                f"or otherMails/any(c: startswith(c,'{escaped}'))"
            ),
        })
        return [_to_app_user(item) for item in page.get("value") or []]

    async def invite_user(
        self,
        email: str,
        display_name: Optional[str] = None,
        groups: Optional[Iterable[str]] = None
    ) -> AppUser:
        user = await self._resolve_user(email)
        if user is None:
            await self._request("POST", "/invitations", json={
                "invitedUserEmailAddress": email,
                "invitedUserDisplayName": display_name or email,
                "inviteRedirectUrl": self._invite_redirect_url,
                "sendInvitationMessage": True,
            })
            user = await self._resolve_user(email)
            if user is None:
                raise TransientDirectoryError(
                    "User invitation sent but the user record could not be resolved.",
                    ErrorCode.DIRECTORY_REJECTED
                )

        for group_name in groups or ():
            await self.add_user_to_group(email, group_name)
        return user

    # =========================================================================
    # MEMBERSHIP
    # =========================================================================

    async def add_user_to_group(self, user_email: str, group_name: str) -> None:
        group_id = await self._resolve_group_id(group_name)
        if group_id is None:
            group_id = (await self.ensure_group(group_name)).id
        user = await self._resolve_user(user_email)
        if user is None:
            user = await self.invite_user(user_email, user_email)
        await self._request(
            "POST",
            f"/groups/{group_id}/members/$ref",
            json={"@odata.id": self._directory_object_url(user.id)}
        )

    async def remove_user_from_group(self, user_email: str, group_name: str) -> None:
        group_id = await self._resolve_group_id(group_name)
        if group_id is None:
            return
        user = await self._resolve_user(user_email)
        if user is None:
            return
        await self._request("DELETE", f"/groups/{group_id}/members/{user.id}/$ref")

    async def get_group_members(self, group_name: str) -> List[AppUser]:
        group_id = await self._resolve_group_id(group_name)
        if group_id is None:
            return []
        members = []
        async for item in self._paged(f"/groups/{group_id}/members", {"$top": PAGE_SIZE}):
            if _principal_type(item) == USER_PRINCIPAL:
                members.append(_to_app_user(item))
        return members

    async def is_user_in_group(self, user_email: str, group_name: str) -> bool:
        group_id = await self._resolve_group_id(group_name)
        if group_id is None:
            return False
        user = await self._resolve_user(user_email)
        if user is None:
            return False
        members = await self.get_group_members(group_name)
        return any(m.id.casefold() == user.id.casefold() for m in members)
