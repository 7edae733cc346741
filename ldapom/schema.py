"""
LDAP object schemas.

A schema describes one type of object (``user``, ``group`` ...) for one
directory flavor (``ad``, ``openldap`` ...): which LDAP attribute each of our
attribute names maps to, which attributes are multi-valued, which converters
apply, and how to find objects of that type with a search filter.

Schemas are registered with a :py:class:`LdapObjectSchemaFactory`, either in
code or through the ``LDAPOM_SCHEMAS`` Django setting::

    LDAPOM_SCHEMAS = [
        {
            "schema_name": "openldap",
            "object_type": "user",
            "object_class": ["inetOrgPerson"],
            "attributes": {
                "name": "cn",
                "firstName": "givenName",
                "email": "mail",
                "emails": "mail",
            },
            "multivalued_attributes": ["emails"],
            "converters": {"enabled": "bool"},
        },
    ]
"""

import logging
from typing import Any

from django.conf import settings
from ldap_filter import Filter

from .converters import AttributeConverter, ConverterRegistry, converters
from .exceptions import SchemaError

logger = logging.getLogger(__name__)


class LdapObjectSchema:
    """
    The attribute mappings and rules for one object type in one schema.

    Every attribute in ``attribute_map`` is single-valued unless it is listed
    in ``multivalued_attributes``.  Several of our names may map onto the same
    LDAP attribute (e.g. ``email`` and ``emails`` both map to ``mail``, one
    single- and one multi-valued).

    Args:
        schema_name: The directory flavor this schema is for.
        object_type: The object type this schema describes.

    Keyword Args:
        attribute_map: Our attribute names mapped to LDAP attribute names.
        converter_map: Attribute names mapped to converter names in
            ``registry``.
        multivalued_attributes: Attribute names that hold lists.
        object_class: The objectClass values that identify this type.
        object_category: The objectCategory that identifies this type (Active
            Directory only).
        filter: An extra LDAP filter string ANDed into searches for this type.
        registry: Where to look up converters.

    """

    def __init__(  # noqa: PLR0913
        self,
        schema_name: str,
        object_type: str,
        attribute_map: dict[str, str] | None = None,
        converter_map: dict[str, str] | None = None,
        multivalued_attributes: list[str] | None = None,
        object_class: list[str] | str | None = None,
        object_category: str | None = None,
        filter: str | None = None,  # noqa: A002
        registry: ConverterRegistry | None = None,
    ) -> None:
        self.schema_name = schema_name
        self.object_type = object_type
        self.attribute_map: dict[str, str] = dict(attribute_map or {})
        self.converter_map: dict[str, str] = dict(converter_map or {})
        self.multivalued_attributes: list[str] = list(multivalued_attributes or [])
        if isinstance(object_class, str):
            object_class = [object_class]
        self.object_class: list[str] = list(object_class or [])
        self.object_category = object_category
        self.filter = filter
        self.registry = registry or converters
        self._attribute_lookup = {k.lower(): v for k, v in self.attribute_map.items()}
        self._converter_lookup = {k.lower(): v for k, v in self.converter_map.items()}
        self._multivalued_lookup = {a.lower() for a in self.multivalued_attributes}
        for converter_name in self.converter_map.values():
            if not self.registry.has(converter_name):
                msg = (
                    f"Schema '{schema_name}' type '{object_type}' refers to unknown "
                    f"attribute converter '{converter_name}'"
                )
                raise SchemaError(msg)

    @classmethod
    def from_dict(
        cls, definition: dict[str, Any], registry: ConverterRegistry | None = None
    ) -> "LdapObjectSchema":
        """
        Build a schema from a definition in the ``LDAPOM_SCHEMAS`` format.

        Raises:
            SchemaError: ``schema_name`` or ``object_type`` is missing, or
                there are keys we don't understand.

        """
        definition = dict(definition)
        try:
            schema_name = definition.pop("schema_name")
            object_type = definition.pop("object_type")
        except KeyError as e:
            msg = f"Schema definitions need a '{e.args[0]}' key"
            raise SchemaError(msg) from e
        schema = cls(
            schema_name,
            object_type,
            attribute_map=definition.pop("attributes", None),
            converter_map=definition.pop("converters", None),
            multivalued_attributes=definition.pop("multivalued_attributes", None),
            object_class=definition.pop("object_class", None),
            object_category=definition.pop("object_category", None),
            filter=definition.pop("filter", None),
            registry=registry,
        )
        if definition:
            msg = (
                f"Schema '{schema_name}' type '{object_type}' got invalid "
                f"key(s): {','.join(definition)}"
            )
            raise SchemaError(msg)
        return schema

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self._attribute_lookup

    def get_attribute_to_ldap(self, name: str) -> str:
        """
        Return the LDAP attribute ``name`` maps to, or ``name`` itself if it
        isn't mapped.
        """
        return self._attribute_lookup.get(name.lower(), name)

    def get_names_mapped_to_attribute(self, ldap_name: str) -> list[str]:
        """
        Return all of our attribute names that map to LDAP attribute
        ``ldap_name``, in definition order.
        """
        lowered = ldap_name.lower()
        return [k for k, v in self.attribute_map.items() if v.lower() == lowered]

    def is_multivalued_attribute(self, name: str) -> bool:
        return name.lower() in self._multivalued_lookup

    def is_single_valued_attribute(self, name: str) -> bool:
        """
        Only mapped attributes have a declared cardinality; anything else is
        left as the list LDAP gave us.
        """
        return self.has_attribute(name) and not self.is_multivalued_attribute(name)

    def has_converter(self, name: str) -> bool:
        return name.lower() in self._converter_lookup

    def get_converter(self, name: str) -> AttributeConverter:
        """
        Return a fresh instance of the converter for attribute ``name``.

        Raises:
            SchemaError: no converter applies to ``name``.

        """
        try:
            converter_name = self._converter_lookup[name.lower()]
        except KeyError as e:
            msg = (
                f"No converter for attribute '{name}' in schema "
                f"'{self.schema_name}' type '{self.object_type}'"
            )
            raise SchemaError(msg) from e
        converter = self.registry.get(converter_name)
        converter.attribute = name
        return converter

    def get_object_filter(self) -> Filter:
        """
        Return an ldap_filter filter that selects objects of this type.
        """
        terms = [Filter.attribute("objectClass").equal_to(c) for c in self.object_class]
        if self.object_category:
            terms.append(
                Filter.attribute("objectCategory").equal_to(self.object_category)
            )
        if self.filter:
            terms.append(Filter.parse(self.filter))
        if not terms:
            return Filter.attribute("objectClass").present()
        if len(terms) == 1:
            return terms[0]
        return Filter.AND(terms).simplify()

    def __repr__(self) -> str:
        return f"<LdapObjectSchema: {self.schema_name}.{self.object_type}>"


class LdapObjectSchemaFactory:
    """
    The registry of schemas, keyed by schema name and object type.

    Keyword Args:
        registry: The converter registry schemas built from settings will use.

    """

    def __init__(self, registry: ConverterRegistry | None = None) -> None:
        self.registry = registry or converters
        self._schemas: dict[tuple[str, str], LdapObjectSchema] = {}

    def register(self, schema: LdapObjectSchema) -> None:
        key = (schema.schema_name.lower(), schema.object_type.lower())
        if key in self._schemas:
            logger.debug(
                "ldapom.schema.register.replacing schema=%s type=%s",
                schema.schema_name,
                schema.object_type,
            )
        self._schemas[key] = schema

    def load_from_settings(self) -> None:
        """
        Register every schema defined in ``settings.LDAPOM_SCHEMAS``.

        Raises:
            SchemaError: a definition is invalid.

        """
        for definition in getattr(settings, "LDAPOM_SCHEMAS", []):
            self.register(LdapObjectSchema.from_dict(definition, self.registry))

    def has(self, schema_name: str, object_type: str) -> bool:
        return (schema_name.lower(), object_type.lower()) in self._schemas

    def get(self, schema_name: str, object_type: str) -> LdapObjectSchema:
        """
        Return the schema for ``object_type`` in ``schema_name``.

        Raises:
            SchemaError: no such schema has been registered.

        """
        try:
            return self._schemas[(schema_name.lower(), object_type.lower())]
        except KeyError as e:
            msg = f"No schema for type '{object_type}' in schema '{schema_name}'"
            raise SchemaError(msg) from e
