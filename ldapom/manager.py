"""
The LDAP object manager.

:py:class:`LdapObjectManager` writes changes made to
:py:class:`~ldapom.objects.LdapObject` instances back to LDAP: it sends the
pending changes of an object as one batched modify, deletes objects, and moves
them between containers.  Each of those fires a "before" and an "after"
event (see :py:mod:`ldapom.events`).

Nothing is retried.  If the LDAP server rejects a change, the error is raised
to the caller and the object's pending changes are left alone so the caller can
try again.  Be careful doing so: if the server applied part of a batch before
failing, replaying the whole batch may not do what you expect.
"""

import logging
from typing import Any

from ldapom import ldap

from .batch import BatchCollection
from .connection import LdapConnection
from .converters import OperationType
from .events import Event, EventDispatcher, LdapObjectEvent
from .exceptions import NotFoundError, PreconditionError, SchemaError
from .hydrators import LdapObjectHydrator
from .objects import DN_ATTRIBUTE, LdapObject
from .query import LdapQueryBuilder
from .schema import LdapObjectSchemaFactory
from .typing import ModifyModList

logger = logging.getLogger(__name__)


def escape_rdn_value(value: str) -> str:
    """
    Escape ``value`` for use as an RDN value (RFC 4514).

    ``escape_dn_chars`` writes NUL as a backslash followed by a raw NUL, which
    is not valid RFC 4514, so we write it as the hex pair ``\\00`` instead.
    """
    return ldap.escape_dn_chars(value).replace("\\\x00", "\\00")


def _is_empty(value: Any) -> bool:
    if isinstance(value, list | tuple):
        return not value
    return value is None or value == ""


class LdapObjectManager:
    """
    Persists, deletes and moves LDAP objects.

    Args:
        connection: The transport to send changes through.
        schema_factory: Where to look up schemas for typed objects.

    Keyword Args:
        dispatcher: Where to send events.  Defaults to an
            :py:class:`~ldapom.events.EventDispatcher`.

    """

    #: The attribute every schema must map to the RDN attribute of its type
    #: for objects of that type to be movable.
    RDN_ATTRIBUTE: str = "name"

    def __init__(
        self,
        connection: LdapConnection,
        schema_factory: LdapObjectSchemaFactory,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self.connection = connection
        self.schema_factory = schema_factory
        self.dispatcher = dispatcher or EventDispatcher()

    def _dispatch(self, name: str, ldap_object: LdapObject) -> None:
        self.dispatcher.dispatch(LdapObjectEvent(name, ldap_object))

    def persist(self, ldap_object: LdapObject) -> None:
        """
        Send the pending changes on ``ldap_object`` to LDAP as one modify.

        Does nothing at all, not even fire events, if there are no pending
        changes.  Afterwards the object has a fresh, empty change log.

        Args:
            ldap_object: The object to save.

        Raises:
            PreconditionError: the object has no dn.
            ConversionError: a converter rejected one of the new values.

        """
        if not ldap_object.batch_collection:
            return
        self._dispatch(Event.LDAP_OBJECT_BEFORE_MODIFY, ldap_object)
        self._validate_object(ldap_object)
        dn = ldap_object.dn
        modlist = self._get_ldap_object_modlist(ldap_object)
        logger.debug("ldapom.manager.persist dn=%s operations=%d", dn, len(modlist))
        self.connection.modify_batch(dn, modlist)
        ldap_object.batch_collection = BatchCollection(dn)
        self._dispatch(Event.LDAP_OBJECT_AFTER_MODIFY, ldap_object)

    def delete(self, ldap_object: LdapObject) -> None:
        """
        Delete ``ldap_object`` from LDAP.

        Raises:
            PreconditionError: the object has no dn.

        """
        self._dispatch(Event.LDAP_OBJECT_BEFORE_DELETE, ldap_object)
        self._validate_object(ldap_object)
        logger.debug("ldapom.manager.delete dn=%s", ldap_object.dn)
        self.connection.delete(ldap_object.dn)
        self._dispatch(Event.LDAP_OBJECT_AFTER_DELETE, ldap_object)

    def move(self, ldap_object: LdapObject, container: str) -> None:
        """
        Move ``ldap_object`` into ``container``, keeping its RDN.

        Afterwards the object's dn, and the target of its pending changes, is
        the new dn.

        Args:
            ldap_object: The object to move.
            container: The dn of the container to move it into.

        Raises:
            PreconditionError: the object has no dn or no schema type, or
                its name is multi-valued.
            SchemaError: the object's schema does not map ``name``.
            NotFoundError: the object has no ``name`` and we could not find
                one in LDAP.

        """
        self._dispatch(Event.LDAP_OBJECT_BEFORE_MOVE, ldap_object)
        self._validate_object(ldap_object)
        rdn = self.get_rdn(ldap_object)
        logger.debug(
            "ldapom.manager.move dn=%s rdn=%s container=%s",
            ldap_object.dn,
            rdn,
            container,
        )
        self.connection.move(ldap_object.dn, rdn, container)

        # refresh() re-targets the pending changes at the new dn too
        ldap_object.refresh({DN_ATTRIBUTE: f"{rdn},{container}"})
        self._dispatch(Event.LDAP_OBJECT_AFTER_MOVE, ldap_object)

    def _validate_object(self, ldap_object: LdapObject) -> None:
        """
        We need a dn to do anything to an object in LDAP.
        """
        if not ldap_object.dn:
            msg = "To persist, delete or move an LDAP object it must have a dn"
            raise PreconditionError(msg)

    def get_rdn(self, ldap_object: LdapObject) -> str:
        """
        Return the RDN of ``ldap_object``, e.g. ``cn=Smith\\, John``.

        The object's schema must map ``name`` to the RDN attribute of its
        type.  If ``name`` wasn't fetched when the object was loaded, or is
        empty, we look it up.  Multi-valued RDNs (``cn=John+uid=jsmith``) are
        not supported.

        Raises:
            PreconditionError: the object has no schema type, or ``name`` is
                multi-valued.
            SchemaError: the schema does not map ``name``.
            NotFoundError: ``name`` could not be found.

        """
        if not ldap_object.object_type:
            msg = "The LDAP object must have a schema type defined to perform this action"
            raise PreconditionError(msg)
        schema = self.schema_factory.get(
            self.connection.get_schema_name(), ldap_object.object_type
        )
        if not schema.has_attribute(self.RDN_ATTRIBUTE):
            msg = (
                f"The LDAP object type '{ldap_object.object_type}' needs a "
                f"'{self.RDN_ATTRIBUTE}' attribute defined that references the RDN"
            )
            raise SchemaError(msg)
        name = None
        if ldap_object.has(self.RDN_ATTRIBUTE):
            name = ldap_object.get(self.RDN_ATTRIBUTE)
        if _is_empty(name):
            name = self._get_rdn_value_if_not_selected(ldap_object)
        if isinstance(name, list | tuple):
            if len(name) != 1:
                msg = (
                    f"Cannot build an RDN for {ldap_object.dn}: multi-valued RDNs "
                    "are not supported"
                )
                raise PreconditionError(msg)
            name = name[0]
        attribute = schema.get_attribute_to_ldap(self.RDN_ATTRIBUTE)
        return f"{attribute}={escape_rdn_value(str(name))}"

    def _get_rdn_value_if_not_selected(self, ldap_object: LdapObject) -> Any:
        """
        Look up ``name`` for an object that was loaded without it.

        Raises:
            NotFoundError: the object or its ``name`` is not in LDAP.

        """
        result = (
            LdapQueryBuilder(self.connection, self.schema_factory)
            .select(self.RDN_ATTRIBUTE)
            .from_(ldap_object.object_type)
            .where(dn=ldap_object.dn)
            .get_one_or_none()
        )
        name = None
        if result is not None and result.has(self.RDN_ATTRIBUTE):
            name = result.get(self.RDN_ATTRIBUTE)
        if _is_empty(name):
            msg = f"Unable to retrieve the RDN value for {ldap_object.dn}"
            raise NotFoundError(msg)
        return name

    def _get_ldap_object_modlist(self, ldap_object: LdapObject) -> ModifyModList:
        """
        Convert the pending changes on ``ldap_object`` into the modlist that
        ``modify_s`` expects.
        """
        hydrator = LdapObjectHydrator(operation_type=OperationType.MODIFY)
        if ldap_object.object_type:
            schema = self.schema_factory.get(
                self.connection.get_schema_name(), ldap_object.object_type
            )
            hydrator.set_ldap_object_schemas(schema)
        return hydrator.hydrate_to_ldap(ldap_object)
