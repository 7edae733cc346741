"""
Attribute value converters.

A converter translates the value of one attribute between the Python value
we expose on an :py:class:`~ldapom.objects.LdapObject` and the string or bytes
LDAP stores.  Schemas name the converter to use for each attribute; the
hydrators look the converter up in a :py:class:`ConverterRegistry` and call
it once per value.

Converters may refuse to work for some operations.  Password converters, for
instance, only make sense when creating or modifying an entry, and raise
:py:class:`~ldapom.exceptions.ConversionError` if asked to convert a value
read back from a search.
"""

import datetime
import enum
import hashlib
import os
from base64 import b64encode as encode
from typing import Any

import pytz

from .exceptions import ConversionError, SchemaError


class OperationType(enum.Enum):
    """The operation a value is being converted for."""

    #: Building a new entry
    CREATE = "create"
    #: Sending changes for an existing entry
    MODIFY = "modify"
    #: Reading values returned by a search
    SEARCH_FROM = "search_from"
    #: Putting values into a search filter
    SEARCH_TO = "search_to"
    #: Renaming or moving an entry
    RENAME = "rename"


class AttributeConverter:
    """
    Base class for attribute converters.

    Subclasses override :py:meth:`to_ldap` and :py:meth:`from_ldap`.  Both work
    on a single value; multi-valued attributes are converted value by value.

    The hydrator sets :py:attr:`attribute` and :py:attr:`operation_type` on the
    converter before each use so that error messages can say which attribute
    was being converted and so that converters can vary by operation.
    """

    #: The operations this converter is willing to take part in.
    operation_types: tuple[OperationType, ...] = tuple(OperationType)

    def __init__(self) -> None:
        self.attribute: str | None = None
        self.operation_type: OperationType = OperationType.SEARCH_FROM

    def supports(self, operation_type: OperationType) -> bool:
        return operation_type in self.operation_types

    def to_ldap(self, value: Any) -> str | bytes:
        """
        Convert a Python value into something LDAP will accept.

        Args:
            value: The Python value.

        Returns:
            The LDAP value.  ``str`` values are UTF-8 encoded by the hydrator.

        """
        return value if isinstance(value, str | bytes) else str(value)

    def from_ldap(self, value: bytes) -> Any:
        """
        Convert a single raw value returned by LDAP into a Python value.

        Args:
            value: The raw value.

        Returns:
            The Python value.

        """
        return self.decode(value)

    def decode(self, value: bytes | str) -> str:
        if isinstance(value, str):
            return value
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise self.invalid(value, "is not valid UTF-8") from e

    def invalid(self, value: Any, reason: str) -> ConversionError:
        """
        Build the error to raise for a value we can't convert.

        Args:
            value: The offending value.
            reason: Why it can't be converted.

        Returns:
            A :py:class:`~ldapom.exceptions.ConversionError`.

        """
        msg = (
            f"{self.__class__.__name__}: value {value!r} for attribute "
            f"'{self.attribute}' {reason}"
        )
        return ConversionError(msg, attribute=self.attribute)


class BoolConverter(AttributeConverter):
    """
    Booleans stored as the strings ``TRUE`` and ``FALSE``, which is what the
    LDAP Boolean syntax (RFC 4517) specifies.
    """

    #: The string value used to represent True in LDAP.
    LDAP_TRUE: str = "TRUE"
    #: The string value used to represent False in LDAP.
    LDAP_FALSE: str = "FALSE"

    def to_ldap(self, value: Any) -> str:
        if value is True:
            return self.LDAP_TRUE
        if value is False:
            return self.LDAP_FALSE
        raise self.invalid(value, "must be either True or False")

    def from_ldap(self, value: bytes) -> bool:
        decoded = self.decode(value).lower()
        if decoded == self.LDAP_TRUE.lower():
            return True
        if decoded == self.LDAP_FALSE.lower():
            return False
        raise self.invalid(value, "is not a boolean")


class LowercaseBoolConverter(BoolConverter):
    """Booleans stored as ``true`` and ``false``."""

    LDAP_TRUE: str = "true"
    LDAP_FALSE: str = "false"


class IntConverter(AttributeConverter):
    def to_ldap(self, value: Any) -> str:
        if isinstance(value, bool):
            raise self.invalid(value, "must be an integer")
        try:
            return str(int(value))
        except (TypeError, ValueError) as e:
            raise self.invalid(value, "must be an integer") from e

    def from_ldap(self, value: bytes) -> int:
        try:
            return int(self.decode(value))
        except ValueError as e:
            raise self.invalid(value, "is not an integer") from e


class GeneralizedTimeConverter(AttributeConverter):
    """
    Timestamps in LDAP Generalized Time syntax, e.g. ``20240131235959Z``.

    We always return timezone-aware UTC datetimes.  Naive datetimes given to us
    are assumed to be UTC already.
    """

    #: The format we write
    LDAP_DATETIME_FORMAT: str = "%Y%m%d%H%M%SZ"
    #: The formats we accept on read; Active Directory adds fractional seconds
    LDAP_DATETIME_FORMATS: tuple[str, ...] = (
        "%Y%m%d%H%M%SZ",
        "%Y%m%d%H%M%S.%fZ",
        "%Y%m%d%H%M%S%z",
    )

    def to_ldap(self, value: Any) -> str:
        if isinstance(value, datetime.datetime):
            if value.tzinfo is None:
                value = pytz.utc.localize(value)
            return value.astimezone(pytz.utc).strftime(self.LDAP_DATETIME_FORMAT)
        if isinstance(value, datetime.date):
            return value.strftime("%Y%m%d000000Z")
        raise self.invalid(value, "must be a date or datetime")

    def from_ldap(self, value: bytes) -> datetime.datetime:
        decoded = self.decode(value)
        for fmt in self.LDAP_DATETIME_FORMATS:
            try:
                dt = datetime.datetime.strptime(decoded, fmt)  # noqa: DTZ007
            except ValueError:  # noqa: PERF203
                continue
            if dt.tzinfo is None:
                return pytz.utc.localize(dt)
            return dt.astimezone(pytz.utc)
        raise self.invalid(value, "is not in Generalized Time format")


class WindowsTimeConverter(AttributeConverter):
    """
    Active Directory timestamps (``pwdLastSet``, ``accountExpires`` ...).

    These are the number of 100-nanosecond intervals since January 1, 1601
    UTC.  ``0`` and ``9223372036854775807`` both mean "never" to Active
    Directory and come back as ``None``.
    """

    #: The Active Directory epoch (January 1, 1601 UTC).
    AD_EPOCH: datetime.datetime = datetime.datetime(1601, 1, 1, tzinfo=pytz.UTC)
    #: The number of 100-nanosecond intervals per microsecond.
    INTERVALS_PER_MICROSECOND: int = 10
    #: Values Active Directory uses for "never".
    NEVER: tuple[int, ...] = (0, 9223372036854775807)

    def to_ldap(self, value: Any) -> str:
        if isinstance(value, datetime.date) and not isinstance(
            value, datetime.datetime
        ):
            value = datetime.datetime.combine(value, datetime.time.min)
        if not isinstance(value, datetime.datetime):
            raise self.invalid(value, "must be a date or datetime")
        if value.tzinfo is None:
            value = pytz.utc.localize(value)
        delta = value.astimezone(pytz.utc) - self.AD_EPOCH
        microseconds = delta // datetime.timedelta(microseconds=1)
        return str(microseconds * self.INTERVALS_PER_MICROSECOND)

    def from_ldap(self, value: bytes) -> datetime.datetime | None:
        try:
            timestamp = int(self.decode(value))
        except ValueError as e:
            raise self.invalid(value, "is not an Active Directory timestamp") from e
        if timestamp in self.NEVER:
            return None
        try:
            return self.AD_EPOCH + datetime.timedelta(
                microseconds=timestamp // self.INTERVALS_PER_MICROSECOND
            )
        except OverflowError as e:
            raise self.invalid(value, "is outside the supported range") from e


class SHA1Converter(AttributeConverter):
    """
    Store a secret as the SHA1 hex digest of its lowercased value.  Useful for
    values you only ever need to compare against, never read back.
    """

    def to_ldap(self, value: Any) -> str:
        if not isinstance(value, str) or not value:
            raise self.invalid(value, "must be a non-empty string")
        return hashlib.sha1(value.lower().encode("utf-8")).hexdigest()  # noqa: S324


class PasswordConverter(AttributeConverter):
    """
    Base class for password converters.  Passwords can be set but never read
    back, so these converters only take part in creates and modifies.
    """

    operation_types: tuple[OperationType, ...] = (
        OperationType.CREATE,
        OperationType.MODIFY,
    )

    def hash_password(self, password: str) -> bytes:
        return password.encode("utf-8")

    def to_ldap(self, value: Any) -> bytes:
        if not isinstance(value, str):
            raise self.invalid("********", "must be a string")
        return self.hash_password(value)


class SSHAPasswordConverter(PasswordConverter):
    """``userPassword`` values hashed with salted SHA1, as OpenLDAP expects."""

    def hash_password(self, password: str) -> bytes:
        salt = os.urandom(8)
        h = hashlib.sha1(password.encode("utf-8"))  # noqa: S324
        h.update(salt)
        return b"{SSHA}" + encode(h.digest() + salt)


class ADPasswordConverter(PasswordConverter):
    """
    ``unicodePwd`` values for Active Directory: the password in double quotes,
    encoded as UTF-16-LE.
    """

    def hash_password(self, password: str) -> bytes:
        return f'"{password}"'.encode("utf-16-le")


class ConverterRegistry:
    """
    Maps the converter names used in schema definitions to converter classes.
    """

    def __init__(self) -> None:
        self._converters: dict[str, type[AttributeConverter]] = {}

    def register(self, name: str, converter: type[AttributeConverter]) -> None:
        """
        Make ``converter`` available to schemas under ``name``.

        Args:
            name: The name schemas will use.  Case-insensitive.
            converter: The converter class.

        """
        self._converters[name.lower()] = converter

    def has(self, name: str) -> bool:
        return name.lower() in self._converters

    def get(self, name: str) -> AttributeConverter:
        """
        Return a new instance of the converter registered as ``name``.

        Raises:
            SchemaError: no converter is registered under that name.

        """
        try:
            return self._converters[name.lower()]()
        except KeyError as e:
            msg = f"No attribute converter named '{name}' is registered"
            raise SchemaError(msg) from e


#: The registry schemas use unless told otherwise.
converters = ConverterRegistry()
converters.register("bool", BoolConverter)
converters.register("bool_lowercase", LowercaseBoolConverter)
converters.register("int", IntConverter)
converters.register("generalized_time", GeneralizedTimeConverter)
converters.register("windows_time", WindowsTimeConverter)
converters.register("sha1", SHA1Converter)
converters.register("password_ssha", SSHAPasswordConverter)
converters.register("password_ad", ADPasswordConverter)
