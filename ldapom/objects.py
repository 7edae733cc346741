"""
In-memory representation of a single LDAP entry.

An :py:class:`LdapObject` holds the attributes of one directory entry and
records every change made through its accessors in a
:py:class:`~ldapom.batch.BatchCollection`.  Nothing is sent to LDAP until the
object is handed to :py:meth:`ldapom.manager.LdapObjectManager.persist`.
"""

from typing import Any

from .batch import Batch, BatchCollection, BatchType
from .exceptions import AttributeDoesNotExist

#: The attribute that holds the distinguished name of the entry.
DN_ATTRIBUTE = "dn"


class LdapObject:
    """
    A directory entry with change tracking.

    Attribute names are case-insensitive, as they are in LDAP.  Whatever
    casing was used first for an attribute is the casing we keep reporting
    for it.

    Keyword Args:
        attributes: The initial attribute values.  These are not recorded as
            changes.
        object_type: The schema type of this object (``"user"``, ``"group"``
            ...), or ``None`` if the object is not backed by a schema.
        batch_collection: An existing change log to use; it is re-targeted
            at this object's ``dn``.  By default a new, empty one is created.

    """

    def __init__(
        self,
        attributes: dict[str, Any] | None = None,
        object_type: str | None = None,
        batch_collection: BatchCollection | None = None,
    ) -> None:
        # We're going to override __getattr__, so set these directly
        self.__dict__["_attributes"] = {}
        self.__dict__["object_type"] = object_type
        for name, value in (attributes or {}).items():
            self._attributes[self._resolve_name(name)] = value
        if batch_collection is None:
            batch_collection = BatchCollection(self.dn)
        self.batch_collection = batch_collection

    def _resolve_name(self, name: str) -> str:
        """
        Return the casing we already use for ``name``, or ``name`` itself if
        we don't have that attribute yet.
        """
        lowered = name.lower()
        for existing in self._attributes:
            if existing.lower() == lowered:
                return existing
        return name

    @property
    def dn(self) -> str | None:
        return self._attributes.get(self._resolve_name(DN_ATTRIBUTE))

    @property
    def batch_collection(self) -> BatchCollection:
        return self._batches

    @batch_collection.setter
    def batch_collection(self, batches: BatchCollection) -> None:
        """
        Use ``batches`` as this object's change log.  It is re-targeted at
        this object's dn.
        """
        batches.dn = self.dn
        self.__dict__["_batches"] = batches

    def has(self, name: str, value: Any = None) -> bool:
        """
        Check whether this object has attribute ``name`` and, optionally,
        whether ``value`` is among its values.

        Args:
            name: The attribute name (any casing).

        Keyword Args:
            value: A value to look for.

        Returns:
            ``True`` if the attribute (and value, when given) is present.

        """
        resolved = self._resolve_name(name)
        if resolved not in self._attributes:
            return False
        if value is None:
            return True
        current = self._attributes[resolved]
        if isinstance(current, list):
            return value in current
        return current == value

    def get(self, name: str) -> Any:
        """
        Return the value of attribute ``name``.

        Raises:
            AttributeDoesNotExist: this object has no such attribute.

        """
        resolved = self._resolve_name(name)
        try:
            return self._attributes[resolved]
        except KeyError as e:
            msg = f"Attribute '{name}' is not set on this object"
            raise AttributeDoesNotExist(msg) from e

    def _record(self, batch: Batch) -> None:
        if batch.mod_type in (BatchType.REPLACE, BatchType.REMOVE_ALL):
            # Anything done to this attribute before a replace or reset is
            # moot, so don't bother sending it
            for index in reversed(range(len(self._batches))):
                previous = self._batches.get(index)
                if previous.attribute.lower() == batch.attribute.lower():
                    self._batches.remove(index)
        self._batches.add(batch)

    def set(self, name: str, value: Any) -> "LdapObject":
        """
        Replace all values of attribute ``name`` with ``value``.

        Setting ``dn`` does not record a change; use
        :py:meth:`ldapom.manager.LdapObjectManager.move` to relocate an entry.

        Returns:
            This object, so calls can be chained.

        """
        if name.lower() == DN_ATTRIBUTE:
            return self.refresh({name: value})
        resolved = self._resolve_name(name)
        self._attributes[resolved] = value
        self._record(Batch(BatchType.REPLACE, resolved, value))
        return self

    def add(self, name: str, *values: Any) -> "LdapObject":
        """
        Add one or more values to attribute ``name``.

        Returns:
            This object, so calls can be chained.

        """
        resolved = self._resolve_name(name)
        current = self._attributes.get(resolved)
        if current is None:
            current = []
        elif not isinstance(current, list):
            current = [current]
        self._attributes[resolved] = [*current, *values]
        self._record(Batch(BatchType.ADD, resolved, list(values)))
        return self

    def remove(self, name: str, *values: Any) -> "LdapObject":
        """
        Remove specific values from attribute ``name``.

        Returns:
            This object, so calls can be chained.

        """
        resolved = self._resolve_name(name)
        if resolved in self._attributes:
            current = self._attributes[resolved]
            if isinstance(current, list):
                remaining = [v for v in current if v not in values]
                if remaining:
                    self._attributes[resolved] = remaining
                else:
                    del self._attributes[resolved]
            elif current in values:
                del self._attributes[resolved]
        self._record(Batch(BatchType.REMOVE, resolved, list(values)))
        return self

    def reset(self, *names: str) -> "LdapObject":
        """
        Remove every value of each attribute in ``names``.

        Returns:
            This object, so calls can be chained.

        """
        for name in names:
            resolved = self._resolve_name(name)
            self._attributes.pop(resolved, None)
            self._record(Batch(BatchType.REMOVE_ALL, resolved))
        return self

    def refresh(self, attributes: dict[str, Any]) -> "LdapObject":
        """
        Update local attribute values without recording any changes.

        This is how the manager brings an object in line with what is now in
        LDAP, e.g. after a move.  A new ``dn`` re-targets the change log.

        Returns:
            This object, so calls can be chained.

        """
        for name, value in attributes.items():
            self._attributes[self._resolve_name(name)] = value
            if name.lower() == DN_ATTRIBUTE:
                self._batches.dn = value
        return self

    def to_dict(self) -> dict[str, Any]:
        return dict(self._attributes)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.get(name)
        except AttributeDoesNotExist as e:
            raise AttributeError(name) from e

    def __setattr__(self, name: str, value: Any) -> None:
        if name in ("batch_collection", "object_type"):
            object.__setattr__(self, name, value)
            return
        self.set(name, value)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __eq__(self, other: object) -> bool:
        """
        Two objects are equal when they have the same type and the same dn.
        Objects without a dn are only equal to themselves.
        """
        if not isinstance(other, LdapObject):
            return False
        if self.object_type != other.object_type:
            return False
        if self.dn is None:
            return self is other
        return other.dn is not None and self.dn.lower() == other.dn.lower()

    def __hash__(self) -> int:
        """
        Hash on the dn, like equality does.  The hash changes when the dn
        does, so don't keep objects you are going to move in sets or as dict
        keys.
        """
        return hash(self.dn.lower() if self.dn else id(self))

    def __repr__(self) -> str:
        return f"<LdapObject: {self}>"

    def __str__(self) -> str:
        return f"{self.object_type or 'LdapObject'} object ({self.dn})"
