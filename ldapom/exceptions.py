"""
Exceptions raised by the LDAP object manager.

These build on Django's exception hierarchy so that callers already handling
``ImproperlyConfigured``, ``ObjectDoesNotExist`` or ``ValidationError`` do the
right thing with ours.  Errors coming back from the directory itself are not
wrapped: python-ldap's :py:class:`ldap.LDAPError` propagates untouched and is
re-exported here as :py:data:`TransportError` for convenience.
"""

from django.core.exceptions import (
    ImproperlyConfigured,
    ObjectDoesNotExist,
    ValidationError,
)

from ldapom import ldap

#: Anything the directory server or python-ldap raises.
TransportError = ldap.LDAPError


class PreconditionError(ValueError):
    """
    Raised when an object is missing something a mutating operation needs,
    such as its ``dn`` or its schema type.
    """


class SchemaError(ImproperlyConfigured):
    """
    Raised when a schema, or a required mapping within a schema, is absent.
    """


class NotFoundError(ObjectDoesNotExist):
    """
    Raised when a lookup needed to complete an operation returned nothing.
    """


class MultipleResultsFound(Exception):
    """Raised when a query expected at most one result but got several."""


class AttributeDoesNotExist(KeyError):
    """Raised when reading an attribute an :py:class:`LdapObject` lacks."""


class ConversionError(ValidationError):
    """
    Raised when an attribute converter rejects a value.

    Args:
        message: What went wrong.

    Keyword Args:
        attribute: The attribute being converted, if known.
        code: A short machine readable code.
        params: Extra values for interpolating into ``message``.

    """

    def __init__(
        self,
        message: str,
        attribute: str | None = None,
        code: str = "invalid",
        params: dict | None = None,
    ) -> None:
        super().__init__(message, code=code, params=params)
        self.attribute = attribute
