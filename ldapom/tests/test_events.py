"""
Tests for LDAP object events.
"""

import unittest

from ldapom.events import (
    SIGNALS,
    Event,
    EventDispatcher,
    LdapObjectEvent,
    ldap_object_before_move,
)
from ldapom.objects import LdapObject


class TestEventDispatcher(unittest.TestCase):
    """Test that events go out over the matching signal."""

    def setUp(self):
        self.obj = LdapObject({"dn": "cn=Alice,ou=people,dc=example,dc=com"})
        self.calls = []
        self.error = None
        ldap_object_before_move.connect(self.receiver)

    def receiver(self, sender, **kwargs):
        if self.error is not None:
            raise self.error
        self.calls.append(dict(kwargs, sender=sender))

    def tearDown(self):
        ldap_object_before_move.disconnect(self.receiver)

    def test_every_event_has_a_signal(self):
        names = {
            value
            for key, value in vars(Event).items()
            if key.startswith("LDAP_OBJECT_")
        }
        self.assertEqual(names, set(SIGNALS))
        self.assertEqual(len(set(map(id, SIGNALS.values()))), 6)

    def test_dispatch(self):
        event = LdapObjectEvent(Event.LDAP_OBJECT_BEFORE_MOVE, self.obj)
        EventDispatcher().dispatch(event)
        self.assertEqual(len(self.calls), 1)
        kwargs = self.calls[0]
        self.assertIs(kwargs["sender"], LdapObject)
        self.assertIs(kwargs["event"], event)
        self.assertIs(kwargs["ldap_object"], self.obj)

    def test_other_signals_are_not_sent(self):
        EventDispatcher().dispatch(
            LdapObjectEvent(Event.LDAP_OBJECT_AFTER_MOVE, self.obj)
        )
        self.assertEqual(self.calls, [])

    def test_receiver_exceptions_propagate(self):
        self.error = RuntimeError("vetoed")
        with self.assertRaises(RuntimeError):
            EventDispatcher().dispatch(
                LdapObjectEvent(Event.LDAP_OBJECT_BEFORE_MOVE, self.obj)
            )

    def test_unknown_event(self):
        with self.assertRaises(KeyError):
            EventDispatcher().dispatch(LdapObjectEvent("ldap.object.exploded", self.obj))


if __name__ == "__main__":
    unittest.main()
