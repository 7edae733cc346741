# Everything in ldapom talks to python-ldap through this module so that
# python-ldap-faker can patch ``ldapom.ldap.initialize`` in our tests.
import ldap
import ldap.dn
from ldap import *  # noqa: F403

__version__ = ldap.__version__
escape_dn_chars = ldap.dn.escape_dn_chars
