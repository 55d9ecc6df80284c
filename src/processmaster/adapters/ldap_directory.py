"""LDAP directory client built on ldap3."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ldap3 import SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from processmaster.errors import DirectoryServiceError
from processmaster.services.auth import DirectoryClient, DirectoryEntry

_logger = logging.getLogger(__name__)

_ATTRIBUTES = ["mail", "givenName", "sn", "memberOf", "cn", "uid"]

ConnectionFactory = Callable[[str | None, str | None], Any]


@dataclass
class Ldap3DirectoryClient(DirectoryClient):
    """Search-then-bind authentication against an LDAP server."""

    url: str
    bind_dn: str
    bind_password: str
    search_base: str
    search_filter: str = "(uid={{username}})"
    timeout_seconds: int = 10
    connection_factory: ConnectionFactory | None = None

    async def authenticate(self, username: str, password: str) -> DirectoryEntry | None:
        return await asyncio.to_thread(self._authenticate, username, password)

    def _authenticate(self, username: str, password: str) -> DirectoryEntry | None:
        entry = self._find_user(username)
        if entry is None:
            return None
        user_connection = self._connect(entry.dn, password)
        try:
            if not user_connection.bind():
                _logger.info("LDAP bind rejected for %s", entry.dn)
                return None
        except LDAPException as exc:
            raise DirectoryServiceError("LDAP directory is unavailable") from exc
        finally:
            user_connection.unbind()
        return entry

    def _find_user(self, username: str) -> DirectoryEntry | None:
        query = self.search_filter.replace(
            "{{username}}", escape_filter_chars(username)
        )

        service = self._connect(self.bind_dn, self.bind_password)
        try:
            if not service.bind():
                raise DirectoryServiceError("LDAP service account bind failed")
            service.search(
                self.search_base,
                query,
                search_scope=SUBTREE,
                attributes=_ATTRIBUTES,
                size_limit=1,
            )
            entries = list(service.entries)
        except LDAPException as exc:
            raise DirectoryServiceError("LDAP directory is unavailable") from exc
        finally:
            service.unbind()
        if not entries:
            return None
        found = entries[0]
        attributes = found.entry_attributes_as_dict
        return DirectoryEntry(
            dn=found.entry_dn,
            email=_first(attributes.get("mail")) or username,
            first_name=_first(attributes.get("givenName")),
            last_name=_first(attributes.get("sn")),
            groups=[str(group) for group in attributes.get("memberOf") or []],
        )

    def _connect(self, user: str | None, password: str | None) -> Any:
        if self.connection_factory is not None:
            return self.connection_factory(user, password)
        server = Server(self.url, connect_timeout=self.timeout_seconds)
        return Connection(
            server,
            user=user,
            password=password,
            receive_timeout=self.timeout_seconds,
        )


def _first(values: object) -> str | None:
    if isinstance(values, list | tuple):
        return str(values[0]) if values else None
    return str(values) if values else None
