"""
LDAP object manager type definitions.

This module provides type aliases for LDAP wire data and modify operations,
using Python 3.10+ type hinting conventions.
"""

from typing import Any

WireValues = list[bytes]
WireAttributes = dict[str, WireValues]
#: What python-ldap hands back from a search: (dn, attributes)
LDAPData = tuple[str, WireAttributes]
#: A hydrator accepts either a full search result or just its attributes
WireEntry = LDAPData | WireAttributes
ModifyModListEntry = tuple[int, str, WireValues | None]
ModifyModList = list[ModifyModListEntry]
AddModList = list[tuple[str, WireValues]]
AttributeValue = Any
