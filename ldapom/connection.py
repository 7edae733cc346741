"""
The LDAP transport.

:py:class:`LdapConnection` wraps a python-ldap connection configured from
``settings.LDAP_SERVERS``, and offers the handful of primitives the object
manager and the query builder need: batched modify, delete, move, search.

Configuration looks like this::

    LDAP_SERVERS = {
        "default": {
            "basedn": "dc=example,dc=com",
            "schema_name": "openldap",
            "read": {
                "url": "ldap://ldap.example.com",
                "user": "cn=reader,dc=example,dc=com",
                "password": "secret",
            },
            "write": {
                "url": "ldap://ldap.example.com",
                "user": "cn=admin,dc=example,dc=com",
                "password": "secret",
                "use_starttls": True,
                "tls_verify": "always",
            },
        }
    }

We don't retry, pool or reconnect.  Whatever python-ldap raises (timeouts,
server down, constraint violations) goes straight back to the caller.
"""

import logging
import threading
from pathlib import Path
from typing import Any, cast

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from ldapom import ldap

from .typing import LDAPData, ModifyModList

logger = logging.getLogger(__name__)


class LdapConnection:
    """
    A per-thread python-ldap connection to one configured LDAP server.

    The connection is opened and bound the first time it is needed by the
    current thread, and stays open until :py:meth:`close`.  python-ldap
    connections are not thread-safe, so each thread gets its own.

    Keyword Args:
        server: The key into ``settings.LDAP_SERVERS``.
        key: Which credentials to bind with, usually ``"read"`` or ``"write"``.

    Raises:
        ImproperlyConfigured: the server or key is not configured.

    """

    #: Schema name to use when the server config doesn't give one
    DEFAULT_SCHEMA_NAME: str = "default"

    def __init__(self, server: str = "default", key: str = "write") -> None:
        self.server = server
        self.key = key
        try:
            self.config: dict[str, Any] = settings.LDAP_SERVERS[server]
        except AttributeError as e:
            msg = "settings.LDAP_SERVERS does not exist!"
            raise ImproperlyConfigured(msg) from e
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS has no key '{server}'"
            raise ImproperlyConfigured(msg) from e
        if key not in self.config:
            msg = f"settings.LDAP_SERVERS['{server}'] has no '{key}' key"
            raise ImproperlyConfigured(msg)
        self.basedn: str | None = self.config.get("basedn")
        # keys in this dictionary get manipulated by .connection and .close()
        self._ldap_objects: dict[threading.Thread, ldap.ldapobject.LDAPObject] = {}  # type: ignore[name-defined]

    def get_schema_name(self) -> str:
        """
        Return the name of the schema flavor this server uses.
        """
        return self.config.get("schema_name", self.DEFAULT_SCHEMA_NAME)

    def _connect(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]  # noqa: PLR0912
        """
        Create, configure and bind a new python-ldap connection.

        Raises:
            ValueError: If the ``tls_verify`` value in the configuration is invalid.
            OSError: If a configured TLS certificate or key file does not exist
                or is not a file.

        Returns:
            A bound LDAPObject.

        """
        config = cast("dict[str, Any]", self.config[self.key])
        ldap_object: ldap.ldapobject.LDAPObject = ldap.initialize(config["url"])  # type: ignore[name-defined]
        if config.get("follow_referrals", False):
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        timeout = config.get("timeout", 15.0)
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(timeout))  # type: ignore[attr-defined]
        sizelimit = config.get("sizelimit", None)
        if sizelimit:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(sizelimit))  # type: ignore[attr-defined]
        tls_verify = config.get("tls_verify", "never")
        if tls_verify == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        elif tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            msg = f"Invalid tls_verify value: {tls_verify}"
            raise ValueError(msg)
        for setting, option, label in (
            ("tls_ca_certfile", ldap.OPT_X_TLS_CACERTFILE, "CA Certificate"),  # type: ignore[attr-defined]
            ("tls_certfile", ldap.OPT_X_TLS_CERTFILE, "TLS Certificate"),  # type: ignore[attr-defined]
            ("tls_keyfile", ldap.OPT_X_TLS_KEYFILE, "TLS Key"),  # type: ignore[attr-defined]
        ):
            if filename := config.get(setting, None):
                path = Path(filename)
                if not path.exists():
                    msg = f"{label} file does not exist: {filename}"
                    raise OSError(msg)
                if not path.is_file():
                    msg = f"{label} file is not a file: {filename}"
                    raise OSError(msg)
                ldap_object.set_option(option, filename)
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        if config.get("use_starttls", True):
            ldap_object.start_tls_s()
        ldap_object.simple_bind_s(config["user"], config["password"])
        logger.debug(
            "ldapom.connection.bind server=%s key=%s url=%s",
            self.server,
            self.key,
            config["url"],
        )
        return ldap_object

    def has_connection(self) -> bool:
        return threading.current_thread() in self._ldap_objects

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Return the current thread's python-ldap connection, opening it if
        necessary.
        """
        thread = threading.current_thread()
        if thread not in self._ldap_objects:
            self._ldap_objects[thread] = self._connect()
        return self._ldap_objects[thread]

    def close(self) -> None:
        """
        Unbind and forget the current thread's connection, if it has one.
        """
        ldap_object = self._ldap_objects.pop(threading.current_thread(), None)
        if ldap_object is not None:
            ldap_object.unbind_s()

    def modify_batch(self, dn: str, modlist: ModifyModList) -> None:
        """
        Apply all of ``modlist`` to ``dn`` in a single modify request.

        Args:
            dn: The entry to modify.
            modlist: ``(mod_op, attribute, values)`` tuples, applied in order.

        """
        logger.debug(
            "ldapom.connection.modify dn=%s operations=%d", dn, len(modlist)
        )
        self.connection.modify_s(dn, modlist)

    def delete(self, dn: str) -> None:
        logger.debug("ldapom.connection.delete dn=%s", dn)
        self.connection.delete_s(dn)

    def move(self, dn: str, rdn: str, new_parent: str) -> None:
        """
        Move ``dn`` to ``rdn,new_parent``.  The old RDN value is removed from
        the entry.

        Args:
            dn: The entry to move.
            rdn: The entry's new relative distinguished name.
            new_parent: The dn of the container to move it into.

        """
        logger.debug(
            "ldapom.connection.move dn=%s rdn=%s new_parent=%s", dn, rdn, new_parent
        )
        self.connection.rename_s(dn, rdn, new_parent, delold=1)

    def search(
        self,
        searchfilter: str,
        attributes: list[str] | None = None,
        basedn: str | None = None,
        scope: int = ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
    ) -> list[LDAPData]:
        """
        Search the LDAP server for entries matching ``searchfilter``.

        Args:
            searchfilter: The LDAP search filter string.

        Keyword Args:
            attributes: The attributes to retrieve; ``None`` means all.
            basedn: The base DN to search from.  Defaults to the server's
                configured ``basedn``.
            scope: LDAP search scope.

        Raises:
            ValueError: no basedn was given or configured.

        Returns:
            List of ``(dn, attributes)`` tuples.

        """
        if basedn is None:
            basedn = self.basedn
        if not basedn:
            msg = (
                "basedn is required either as a parameter or in "
                f"settings.LDAP_SERVERS['{self.server}']"
            )
            raise ValueError(msg)
        logger.debug(
            "ldapom.connection.search basedn=%s filter=%s", basedn, searchfilter
        )
        data = self.connection.search_s(
            basedn, scope, filterstr=searchfilter, attrlist=attributes
        )
        # We have to filter out any references that AD puts in
        return [obj for obj in data if isinstance(obj[1], dict)]
