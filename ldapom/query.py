"""
A small query builder for schema-backed LDAP objects.

This is just enough of a query layer to look objects up by type and
attribute values and get them back hydrated::

    user = (
        LdapQueryBuilder(connection, schema_factory)
        .select("name")
        .from_("user")
        .where(dn="cn=Alice,ou=people,dc=example,dc=com")
        .get_one_or_none()
    )

Conditions are given with our attribute names and translated to LDAP names
through the object type's schema.  A ``dn`` condition turns the search into a
base-scope search on that dn.
"""

from typing import Any

from ldap_filter import Filter

from ldapom import ldap

from .connection import LdapConnection
from .converters import OperationType
from .exceptions import MultipleResultsFound, PreconditionError
from .hydrators import HydratedCollection, LdapObjectHydrator
from .objects import DN_ATTRIBUTE, LdapObject
from .schema import LdapObjectSchema, LdapObjectSchemaFactory


class LdapQueryBuilder:
    """
    Build and run a search for one object type.

    Args:
        connection: The transport to search with.
        schema_factory: Where to find the schema for the object type.

    """

    def __init__(
        self, connection: LdapConnection, schema_factory: LdapObjectSchemaFactory
    ) -> None:
        self.connection = connection
        self.schema_factory = schema_factory
        self._selected: list[str] = []
        self._object_type: str | None = None
        self._conditions: dict[str, Any] = {}

    def select(self, *names: str) -> "LdapQueryBuilder":
        """
        Choose the attributes to fetch.  Without a select, every mapped
        attribute of the object type is fetched.
        """
        self._selected.extend(names)
        return self

    def from_(self, object_type: str) -> "LdapQueryBuilder":
        self._object_type = object_type
        return self

    def where(self, **conditions: Any) -> "LdapQueryBuilder":
        """
        Add equality conditions, ANDed together.  A list value matches any of
        its items.
        """
        self._conditions.update(conditions)
        return self

    def _get_filter(self, schema: LdapObjectSchema) -> str:
        terms = [schema.get_object_filter()]
        for name, value in self._conditions.items():
            if name.lower() == DN_ATTRIBUTE:
                continue
            attr_name = schema.get_attribute_to_ldap(name)
            if isinstance(value, list | tuple):
                terms.append(
                    Filter.OR([Filter.attribute(attr_name).equal_to(v) for v in value])
                )
            else:
                terms.append(Filter.attribute(attr_name).equal_to(value))
        if len(terms) == 1:
            return terms[0].to_string()
        return Filter.AND(terms).simplify().to_string()

    def get_result(self) -> HydratedCollection:
        """
        Run the search.

        Raises:
            PreconditionError: :py:meth:`from_` was never called.
            SchemaError: there is no schema for the object type.

        Returns:
            The matching objects, hydrated lazily.

        """
        if self._object_type is None:
            msg = "Call from_() with an object type before running the query"
            raise PreconditionError(msg)
        schema = self.schema_factory.get(
            self.connection.get_schema_name(), self._object_type
        )
        selected = self._selected or list(schema.attribute_map)
        attributes = list(
            dict.fromkeys(schema.get_attribute_to_ldap(name) for name in selected)
        )
        basedn = None
        scope = ldap.SCOPE_SUBTREE  # type: ignore[attr-defined]
        for name, value in self._conditions.items():
            if name.lower() == DN_ATTRIBUTE:
                basedn = value
                scope = ldap.SCOPE_BASE  # type: ignore[attr-defined]
        try:
            entries = self.connection.search(
                self._get_filter(schema), attributes, basedn=basedn, scope=scope
            )
        except ldap.NO_SUCH_OBJECT:  # type: ignore[attr-defined]
            if basedn is None:
                raise
            entries = []
        hydrator = LdapObjectHydrator(
            schemas=[schema],
            operation_type=OperationType.SEARCH_FROM,
            selected_attributes=selected,
        )
        return hydrator.hydrate_all_from_ldap(entries)

    def get_one_or_none(self) -> LdapObject | None:
        """
        Run the search and return the single match, or ``None``.

        Raises:
            MultipleResultsFound: more than one object matched.

        """
        results = self.get_result()
        if len(results) > 1:
            msg = f"Expected at most one '{self._object_type}' but found {len(results)}"
            raise MultipleResultsFound(msg)
        for obj in results:
            return obj
        return None
