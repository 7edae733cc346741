"""
Tests for Batch and BatchCollection.
"""

import unittest

import ldap

from ldapom.batch import Batch, BatchCollection, BatchType


class TestBatchType(unittest.TestCase):
    """Test the mapping of batch types onto python-ldap modify operations."""

    def test_ldap_mod_op(self):
        self.assertEqual(BatchType.ADD.ldap_mod_op, ldap.MOD_ADD)
        self.assertEqual(BatchType.REPLACE.ldap_mod_op, ldap.MOD_REPLACE)
        self.assertEqual(BatchType.REMOVE.ldap_mod_op, ldap.MOD_DELETE)
        self.assertEqual(BatchType.REMOVE_ALL.ldap_mod_op, ldap.MOD_DELETE)


class TestBatch(unittest.TestCase):
    """Test single pending changes."""

    def test_scalar_value_is_wrapped(self):
        batch = Batch(BatchType.REPLACE, "mail", "alice@example.com")
        self.assertEqual(batch.values, ["alice@example.com"])

    def test_tuple_values_become_list(self):
        batch = Batch(BatchType.ADD, "mail", ("a@example.com", "b@example.com"))
        self.assertEqual(batch.values, ["a@example.com", "b@example.com"])

    def test_no_values(self):
        batch = Batch(BatchType.REMOVE_ALL, "description")
        self.assertEqual(batch.values, [])
        self.assertTrue(batch.is_type_remove_all())

    def test_remove_all_with_values_fails(self):
        with self.assertRaises(ValueError):
            Batch(BatchType.REMOVE_ALL, "description", ["foo"])

    def test_type_predicates(self):
        self.assertTrue(Batch(BatchType.ADD, "a", "x").is_type_add())
        self.assertTrue(Batch(BatchType.REMOVE, "a", "x").is_type_remove())
        self.assertTrue(Batch(BatchType.REPLACE, "a", "x").is_type_replace())
        self.assertFalse(Batch(BatchType.REPLACE, "a", "x").is_type_add())

    def test_equality_ignores_attribute_case(self):
        self.assertEqual(
            Batch(BatchType.ADD, "Mail", "x"), Batch(BatchType.ADD, "mail", "x")
        )
        self.assertNotEqual(
            Batch(BatchType.ADD, "mail", "x"), Batch(BatchType.REMOVE, "mail", "x")
        )


class TestBatchCollection(unittest.TestCase):
    """Test the ordered change log."""

    def setUp(self):
        self.batches = BatchCollection("cn=Alice,ou=people,dc=example,dc=com")
        self.first = Batch(BatchType.REMOVE_ALL, "description")
        self.second = Batch(BatchType.ADD, "description", "new")
        self.batches.add(self.first)
        self.batches.add(self.second)

    def test_empty_collection_is_falsy(self):
        self.assertFalse(BatchCollection())
        self.assertEqual(len(BatchCollection()), 0)

    def test_order_is_preserved(self):
        self.assertEqual(self.batches.to_list(), [self.first, self.second])
        self.assertEqual(list(self.batches), [self.first, self.second])

    def test_get_and_has(self):
        self.assertIs(self.batches.get(1), self.second)
        self.assertTrue(self.batches.has(0))
        self.assertFalse(self.batches.has(2))
        self.assertFalse(self.batches.has(-1))
        with self.assertRaises(IndexError):
            self.batches.get(5)

    def test_remove_keeps_order_of_the_rest(self):
        third = Batch(BatchType.REPLACE, "mail", "x")
        self.batches.add(third)
        self.batches.remove(1)
        self.assertEqual(self.batches.to_list(), [self.first, third])

    def test_to_list_is_a_copy(self):
        self.batches.to_list().clear()
        self.assertEqual(len(self.batches), 2)

    def test_dn_can_be_changed(self):
        self.batches.dn = "cn=Alice,ou=New,dc=example,dc=com"
        self.assertEqual(self.batches.dn, "cn=Alice,ou=New,dc=example,dc=com")
        self.assertEqual(len(self.batches), 2)


if __name__ == "__main__":
    unittest.main()
