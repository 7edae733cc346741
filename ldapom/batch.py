"""
Change tracking for LDAP objects.

Every change made to an :py:class:`~ldapom.objects.LdapObject` is recorded as
a :py:class:`Batch` in the object's :py:class:`BatchCollection`.  When the
object is persisted the collection is turned into a single python-ldap
modlist and sent with one ``modify_s`` call.

Order matters here: directory servers apply the operations of a modify
request in sequence, so "remove all values, then add one" is not the same
request as "add one, then remove all values".
"""

import enum
from collections.abc import Iterator
from typing import Any

from ldapom import ldap


class BatchType(enum.Enum):
    """The kinds of change we can record against an attribute."""

    ADD = "add"
    REMOVE = "remove"
    REMOVE_ALL = "remove_all"
    REPLACE = "replace"

    @property
    def ldap_mod_op(self) -> int:
        """
        The python-ldap modify operation for this batch type.

        ``REMOVE`` and ``REMOVE_ALL`` are both ``MOD_DELETE``; they differ only
        in whether values are sent along with the request.
        """
        if self is BatchType.ADD:
            return ldap.MOD_ADD  # type: ignore[attr-defined]
        if self is BatchType.REPLACE:
            return ldap.MOD_REPLACE  # type: ignore[attr-defined]
        return ldap.MOD_DELETE  # type: ignore[attr-defined]


class Batch:
    """
    A single pending change to one attribute.

    Args:
        mod_type: What kind of change this is.
        attribute: The attribute name, as the caller used it.

    Keyword Args:
        values: The values involved.  A scalar is wrapped in a list.  Must be
            empty for :py:attr:`BatchType.REMOVE_ALL`.

    Raises:
        ValueError: values were given for a ``REMOVE_ALL`` batch.

    """

    def __init__(self, mod_type: BatchType, attribute: str, values: Any = None) -> None:
        self.mod_type = mod_type
        self.attribute = attribute
        if values is None:
            values = []
        elif not isinstance(values, list | tuple):
            values = [values]
        self.values: list[Any] = list(values)
        if mod_type is BatchType.REMOVE_ALL and self.values:
            msg = f"A REMOVE_ALL batch for '{attribute}' cannot carry values"
            raise ValueError(msg)

    def is_type_add(self) -> bool:
        return self.mod_type is BatchType.ADD

    def is_type_remove(self) -> bool:
        return self.mod_type is BatchType.REMOVE

    def is_type_remove_all(self) -> bool:
        return self.mod_type is BatchType.REMOVE_ALL

    def is_type_replace(self) -> bool:
        return self.mod_type is BatchType.REPLACE

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Batch):
            return NotImplemented
        return (
            self.mod_type is other.mod_type
            and self.attribute.lower() == other.attribute.lower()
            and self.values == other.values
        )

    def __hash__(self) -> int:
        return hash((self.mod_type, self.attribute.lower()))

    def __repr__(self) -> str:
        return f"<Batch: {self.mod_type.name} {self.attribute}={self.values!r}>"


class BatchCollection:
    """
    The ordered log of pending changes for one LDAP entry.

    Batches are only ever appended; once an object has been persisted its
    collection is swapped for a brand new one rather than being emptied.  The
    ``dn`` is the one thing that changes in place, when the entry it targets
    is moved or renamed.

    Keyword Args:
        dn: The distinguished name of the entry these changes target.

    """

    def __init__(self, dn: str | None = None) -> None:
        self.dn = dn
        self._batches: list[Batch] = []

    def add(self, batch: Batch) -> None:
        """
        Record a change at the end of the log.

        Args:
            batch: The change to record.

        """
        self._batches.append(batch)

    def get(self, index: int) -> Batch:
        """
        Return the batch at ``index``.

        Raises:
            IndexError: no batch exists at ``index``.

        """
        return self._batches[index]

    def has(self, index: int) -> bool:
        return 0 <= index < len(self._batches)

    def remove(self, index: int) -> None:
        """
        Drop a recorded change, keeping the order of the others.

        Raises:
            IndexError: no batch exists at ``index``.

        """
        del self._batches[index]

    def to_list(self) -> list[Batch]:
        return list(self._batches)

    def __iter__(self) -> Iterator[Batch]:
        return iter(list(self._batches))

    def __len__(self) -> int:
        return len(self._batches)

    def __bool__(self) -> bool:
        return bool(self._batches)

    def __repr__(self) -> str:
        return f"<BatchCollection: {self.dn} ({len(self)} changes)>"
