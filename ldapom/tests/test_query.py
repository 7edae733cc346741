"""
Tests for LdapQueryBuilder.
"""

import unittest
from unittest.mock import Mock

import django
import ldap
from django.conf import settings

from ldapom.connection import LdapConnection
from ldapom.exceptions import MultipleResultsFound, PreconditionError, SchemaError
from ldapom.objects import LdapObject
from ldapom.query import LdapQueryBuilder
from ldapom.schema import LdapObjectSchema, LdapObjectSchemaFactory

# Configure Django settings before anything reads them
if not settings.configured:
    settings.configure(
        LDAP_SERVERS={
            "test_server": {
                "basedn": "dc=example,dc=com",
                "schema_name": "openldap",
                "read": {
                    "url": "ldap://localhost:389",
                    "user": "cn=admin,dc=example,dc=com",
                    "password": "admin",
                    "use_starttls": False,
                    "tls_verify": "never",
                },
                "write": {
                    "url": "ldap://localhost:389",
                    "user": "cn=admin,dc=example,dc=com",
                    "password": "admin",
                    "use_starttls": False,
                    "tls_verify": "never",
                },
            }
        },
        LDAPOM_SCHEMAS=[],
        LDAPOM_STRICT_SINGLE_VALUED=False,
    )
    try:
        django.setup()
    except Exception:
        pass


class TestLdapQueryBuilder(unittest.TestCase):

    def setUp(self):
        self.connection = Mock(spec=LdapConnection)
        self.connection.get_schema_name.return_value = "openldap"
        self.connection.search.return_value = [
            ("cn=Alice,ou=people,dc=example,dc=com", {"cn": [b"Alice"], "mail": [b"alice@example.com"]}),
            ("cn=Bob,ou=people,dc=example,dc=com", {"cn": [b"Bob"], "mail": [b"bob@example.com"]}),
        ]
        self.schemas = LdapObjectSchemaFactory()
        self.schemas.register(
            LdapObjectSchema(
                "openldap",
                "user",
                attribute_map={"name": "cn", "email": "mail", "emails": "mail"},
                multivalued_attributes=["emails"],
                object_class=["inetOrgPerson"],
            )
        )

    def query(self):
        return LdapQueryBuilder(self.connection, self.schemas)

    def test_requires_object_type(self):
        with self.assertRaises(PreconditionError):
            self.query().select("name").get_result()

    def test_unknown_object_type(self):
        with self.assertRaises(SchemaError):
            self.query().from_("group").get_result()

    def test_get_result(self):
        results = self.query().select("name", "email").from_("user").get_result()
        filterstr, attributes = self.connection.search.call_args.args
        self.assertEqual(filterstr, "(objectClass=inetOrgPerson)")
        self.assertEqual(attributes, ["cn", "mail"])
        self.assertEqual(self.connection.search.call_args.kwargs["scope"], ldap.SCOPE_SUBTREE)
        self.assertIsNone(self.connection.search.call_args.kwargs["basedn"])
        objects = results.as_list()
        self.assertEqual([obj.name for obj in objects], ["Alice", "Bob"])
        self.assertTrue(all(isinstance(obj, LdapObject) for obj in objects))
        self.assertEqual(objects[0].object_type, "user")

    def test_all_mapped_attributes_by_default(self):
        self.query().from_("user").get_result()
        attributes = self.connection.search.call_args.args[1]
        self.assertEqual(attributes, ["cn", "mail"])

    def test_where(self):
        self.query().from_("user").where(name="Alice", email=["a@x.com", "b@x.com"]).get_result()
        filterstr = self.connection.search.call_args.args[0]
        self.assertTrue(filterstr.startswith("(&"))
        self.assertIn("(objectClass=inetOrgPerson)", filterstr)
        self.assertIn("(cn=Alice)", filterstr)
        self.assertIn("(|(mail=a@x.com)(mail=b@x.com))", filterstr)

    def test_where_dn(self):
        dn = "cn=Alice,ou=people,dc=example,dc=com"
        self.query().select("name").from_("user").where(dn=dn).get_result()
        kwargs = self.connection.search.call_args.kwargs
        self.assertEqual(kwargs["basedn"], dn)
        self.assertEqual(kwargs["scope"], ldap.SCOPE_BASE)
        self.assertEqual(
            self.connection.search.call_args.args[0], "(objectClass=inetOrgPerson)"
        )

    def test_where_dn_missing(self):
        self.connection.search.side_effect = ldap.NO_SUCH_OBJECT({"desc": "No such object"})
        result = (
            self.query()
            .from_("user")
            .where(dn="cn=Nobody,dc=example,dc=com")
            .get_one_or_none()
        )
        self.assertIsNone(result)

    def test_no_such_object_on_subtree_search_propagates(self):
        self.connection.search.side_effect = ldap.NO_SUCH_OBJECT({"desc": "No such object"})
        with self.assertRaises(ldap.NO_SUCH_OBJECT):
            self.query().from_("user").get_result()

    def test_selected_casing(self):
        objects = self.query().select("Mail").from_("user").get_result().as_list()
        self.assertEqual(objects[0].to_dict()["Mail"], ["alice@example.com"])

    def test_get_one_or_none(self):
        with self.assertRaises(MultipleResultsFound):
            self.query().from_("user").get_one_or_none()
        self.connection.search.return_value = []
        self.assertIsNone(self.query().from_("user").get_one_or_none())
        self.connection.search.return_value = [
            ("cn=Alice,ou=people,dc=example,dc=com", {"cn": [b"Alice"]})
        ]
        self.assertEqual(self.query().from_("user").get_one_or_none().name, "Alice")


if __name__ == "__main__":
    unittest.main()
