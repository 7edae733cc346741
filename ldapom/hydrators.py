"""
Hydrators: translation between LDAP entries and Python objects.

A hydrator is configured with the schemas in effect, the operation being
performed and the attributes the originating query selected, and can then be
used to turn any number of LDAP entries into Python objects and back.  It
keeps no state between calls other than that configuration.

Hydrators are cheap to build.  Use one per operation rather than sharing one
between threads: reconfiguring a hydrator while another thread is using it
gives undefined results.

Entries coming from LDAP look like what python-ldap's ``search_s`` returns,
either the whole ``(dn, attributes)`` tuple or just the attributes dict::

    ("cn=Alice,ou=people,dc=example,dc=com", {"cn": [b"Alice"], "mail": [b"a@example.com"]})

LDAP does not tell us whether an attribute is single- or multi-valued, so
attribute values are always lists there.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from django.conf import settings

from .converters import AttributeConverter, OperationType
from .exceptions import ConversionError
from .objects import DN_ATTRIBUTE, LdapObject
from .schema import LdapObjectSchema
from .typing import AddModList, ModifyModList, WireAttributes, WireEntry, WireValues

logger = logging.getLogger(__name__)


class HydratedCollection:
    """
    The result of hydrating a list of entries.

    Entries are hydrated lazily, in order, each time the collection is
    iterated, so iterating twice gives two sets of equal but distinct objects.

    Args:
        hydrate: The function to hydrate one entry with.
        entries: The raw entries.

    """

    def __init__(self, hydrate: Callable[[WireEntry], Any], entries: Iterable[WireEntry]) -> None:
        self._hydrate = hydrate
        self._entries = list(entries)

    def __iter__(self) -> Iterator[Any]:
        for entry in self._entries:
            yield self._hydrate(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def as_list(self) -> list[Any]:
        return list(self)


class BaseHydrator(ABC):
    """
    The contract every hydrator implements.
    """

    @abstractmethod
    def hydrate_to_ldap(self, obj: Any) -> Any:
        """
        Translate ``obj`` into the form python-ldap needs to write it.
        """

    @abstractmethod
    def hydrate_from_ldap(self, entry: WireEntry) -> Any:
        """
        Translate a single LDAP entry into a Python object.
        """

    @abstractmethod
    def hydrate_all_from_ldap(self, entries: Iterable[WireEntry]) -> HydratedCollection:
        """
        Translate a list of LDAP entries, preserving their order.
        """

    @abstractmethod
    def set_ldap_object_schemas(self, *schemas: LdapObjectSchema) -> None:
        """
        Set the schemas to translate attribute names and values with.  Order
        matters: when two schemas both know an attribute, the first one wins.
        With no schemas at all, attributes are passed through as they are.
        """

    @abstractmethod
    def get_ldap_object_schemas(self) -> list[LdapObjectSchema]:
        """Return the schemas in effect."""

    @abstractmethod
    def set_selected_attributes(self, attributes: list[str]) -> None:
        """
        Record the attribute names exactly as the originating query asked for
        them.  Hydrated objects report those attributes under the requested
        name and casing, even where a schema names them differently.  This
        also means that a converter registered for the schema's name of an
        attribute is not applied when the attribute was selected by its LDAP
        name.
        """

    @abstractmethod
    def get_selected_attributes(self) -> list[str]:
        """Return the selected attribute names."""

    @abstractmethod
    def set_operation_type(self, operation_type: OperationType) -> None:
        """
        Set which operation values are being converted for.  Converters may
        refuse some operations.
        """


class ArrayHydrator(BaseHydrator):
    """
    Hydrates LDAP entries into plain dicts, and dicts of attributes into
    python-ldap add modlists.

    Keyword Args:
        schemas: The schemas in effect.
        operation_type: The operation values are converted for.
        selected_attributes: The attribute names the query selected.

    """

    def __init__(
        self,
        schemas: Iterable[LdapObjectSchema] = (),
        operation_type: OperationType = OperationType.SEARCH_FROM,
        selected_attributes: Iterable[str] = (),
    ) -> None:
        self._schemas: list[LdapObjectSchema] = list(schemas)
        self._selected_attributes: list[str] = list(selected_attributes)
        self.operation_type = operation_type

    # -----------------------
    # Configuration
    # -----------------------

    def set_ldap_object_schemas(self, *schemas: LdapObjectSchema) -> None:
        self._schemas = list(schemas)

    def get_ldap_object_schemas(self) -> list[LdapObjectSchema]:
        return list(self._schemas)

    def set_selected_attributes(self, attributes: list[str]) -> None:
        self._selected_attributes = list(attributes)

    def get_selected_attributes(self) -> list[str]:
        return list(self._selected_attributes)

    def set_operation_type(self, operation_type: OperationType) -> None:
        self.operation_type = operation_type

    @property
    def strict_single_valued(self) -> bool:
        """
        Whether a single-valued attribute coming back with several values is
        an error (``True``) or is truncated to its first value (``False``).
        Controlled by ``settings.LDAPOM_STRICT_SINGLE_VALUED``.
        """
        return bool(getattr(settings, "LDAPOM_STRICT_SINGLE_VALUED", False))

    # -----------------------
    # Schema lookups
    # -----------------------

    def _schema_for(self, name: str) -> LdapObjectSchema | None:
        """
        Return the first schema that knows anything about attribute ``name``.
        """
        for schema in self._schemas:
            if schema.has_attribute(name) or schema.has_converter(name):
                return schema
        return None

    def _get_attribute_to_ldap(self, name: str) -> str:
        for schema in self._schemas:
            if schema.has_attribute(name):
                return schema.get_attribute_to_ldap(name)
        return name

    def _get_names_for_ldap_attribute(self, ldap_name: str) -> list[str]:
        """
        Return the name(s) an LDAP attribute should be reported under.

        Selected attribute names win, in the casing they were selected with,
        whether they were selected by our name or by the LDAP name.  After
        that we use the first name the first schema mapping ``ldap_name``
        has for it, and failing that the LDAP name itself.
        """
        mapped: list[str] = []
        for schema in self._schemas:
            mapped = schema.get_names_mapped_to_attribute(ldap_name)
            if mapped:
                break
        candidates = {ldap_name.lower()} | {m.lower() for m in mapped}
        requested = [
            s for s in self._selected_attributes if s.lower() in candidates
        ]
        if requested:
            return requested
        if mapped:
            return [mapped[0]]
        return [ldap_name]

    def _get_converter(self, name: str) -> AttributeConverter | None:
        schema = self._schema_for(name)
        if schema is None or not schema.has_converter(name):
            return None
        converter = schema.get_converter(name)
        converter.operation_type = self.operation_type
        if not converter.supports(self.operation_type):
            msg = (
                f"Converter {converter.__class__.__name__} for attribute '{name}' "
                f"does not support the '{self.operation_type.value}' operation"
            )
            raise ConversionError(msg, attribute=name, code="unsupported_operation")
        return converter

    # -----------------------
    # From LDAP
    # -----------------------

    @staticmethod
    def _split_entry(entry: WireEntry) -> tuple[str | None, WireAttributes]:
        if isinstance(entry, tuple):
            return entry[0], entry[1]
        return None, entry

    @staticmethod
    def _decode(value: bytes | str) -> bytes | str:
        """
        Decode a raw value as UTF-8.  Binary values (``objectGUID``,
        ``jpegPhoto`` ...) are left as bytes.
        """
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return value
        return value

    def _convert_from_ldap(self, name: str, values: WireValues) -> Any:
        converter = self._get_converter(name)
        if converter is None:
            converted = [self._decode(v) for v in values]
        else:
            converted = [converter.from_ldap(v) for v in values]

        schema = self._schema_for(name)
        if schema is None or not schema.is_single_valued_attribute(name):
            return converted
        if not converted:
            return None
        if len(converted) > 1:
            if self.strict_single_valued:
                msg = (
                    f"Attribute '{name}' is single-valued in schema "
                    f"'{schema.schema_name}' type '{schema.object_type}' but LDAP "
                    f"returned {len(converted)} values"
                )
                raise ConversionError(msg, attribute=name, code="multiple_values")
            logger.warning(
                "ldapom.hydrator.single_valued.truncated attribute=%s values=%d",
                name,
                len(converted),
            )
        return converted[0]

    def _hydrate_attributes(self, entry: WireEntry) -> dict[str, Any]:
        dn, attributes = self._split_entry(entry)
        data: dict[str, Any] = {}
        for ldap_name, raw in attributes.items():
            values = list(raw) if isinstance(raw, list | tuple) else [raw]
            for name in self._get_names_for_ldap_attribute(ldap_name):
                data[name] = self._convert_from_ldap(name, values)
        if dn is not None:
            data[DN_ATTRIBUTE] = dn
        return data

    def hydrate_from_ldap(self, entry: WireEntry) -> dict[str, Any]:
        """
        Translate one LDAP entry into a dict of attributes.

        Args:
            entry: A ``(dn, attributes)`` tuple or an attributes dict.

        Raises:
            ConversionError: a converter rejected a value.

        Returns:
            The attributes, keyed by our attribute names.  The entry's dn, if
            we were given one, is under ``dn``.

        """
        return self._hydrate_attributes(entry)

    def hydrate_all_from_ldap(self, entries: Iterable[WireEntry]) -> HydratedCollection:
        return HydratedCollection(self.hydrate_from_ldap, entries)

    # -----------------------
    # To LDAP
    # -----------------------

    def _convert_to_ldap(self, name: str, values: list[Any]) -> WireValues:
        converter = self._get_converter(name)
        wire: WireValues = []
        for value in values:
            if value is None:
                continue
            if converter is not None:
                value = converter.to_ldap(value)  # noqa: PLW2901
            if isinstance(value, bytes):
                wire.append(value)
            else:
                wire.append(str(value).encode("utf-8"))
        return wire

    @staticmethod
    def _as_list(value: Any) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, list | tuple):
            return list(value)
        return [value]

    def hydrate_to_ldap(self, obj: dict[str, Any]) -> AddModList:
        """
        Translate a dict of attributes into a modlist for python-ldap's
        ``add_s``.  The ``dn`` and attributes without values are left out.

        Args:
            obj: The attributes, keyed by our attribute names.

        Raises:
            ConversionError: a converter rejected a value.

        Returns:
            A list of ``(ldap_attribute, [values])`` tuples.

        """
        modlist: AddModList = []
        for name, value in obj.items():
            if name.lower() == DN_ATTRIBUTE:
                continue
            wire = self._convert_to_ldap(name, self._as_list(value))
            if wire:
                modlist.append((self._get_attribute_to_ldap(name), wire))
        return modlist


class LdapObjectHydrator(ArrayHydrator):
    """
    Hydrates LDAP entries into :py:class:`~ldapom.objects.LdapObject`
    instances, and the pending changes of an ``LdapObject`` into a modlist
    for python-ldap's ``modify_s``.
    """

    def hydrate_from_ldap(self, entry: WireEntry) -> LdapObject:  # type: ignore[override]
        """
        Translate one LDAP entry into an :py:class:`~ldapom.objects.LdapObject`.

        The object's type is that of the first schema in effect, if any.

        Raises:
            ConversionError: a converter rejected a value.

        """
        object_type = self._schemas[0].object_type if self._schemas else None
        return LdapObject(self._hydrate_attributes(entry), object_type=object_type)

    def hydrate_to_ldap(self, obj: LdapObject) -> ModifyModList:  # type: ignore[override]
        """
        Translate the pending changes on ``obj`` into a modify modlist.

        There is exactly one modlist entry per recorded change, in the order
        the changes were made.  Changes to ``dn`` are never sent; moves go
        through :py:meth:`ldapom.manager.LdapObjectManager.move`.  Nothing
        about ``obj`` or its changes is altered.

        Args:
            obj: The object whose changes we want to send.

        Raises:
            ConversionError: a converter rejected a value.

        Returns:
            A list of ``(mod_op, ldap_attribute, values)`` tuples.
            ``values`` is ``None`` when removing every value of an attribute.

        """
        modlist: ModifyModList = []
        for batch in obj.batch_collection:
            if batch.attribute.lower() == DN_ATTRIBUTE:
                continue
            ldap_name = self._get_attribute_to_ldap(batch.attribute)
            if batch.is_type_remove_all():
                modlist.append((batch.mod_type.ldap_mod_op, ldap_name, None))
                continue
            values = self._convert_to_ldap(batch.attribute, batch.values)
            modlist.append((batch.mod_type.ldap_mod_op, ldap_name, values))
        return modlist
