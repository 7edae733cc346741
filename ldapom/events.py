"""
Events fired around changes to LDAP objects.

:py:class:`~ldapom.manager.LdapObjectManager` fires an event immediately
before and immediately after each modify, delete and move.  Each event kind
is a Django signal, so listening to one works like listening to any other
signal::

    from django.dispatch import receiver

    from ldapom.events import ldap_object_before_modify

    @receiver(ldap_object_before_modify)
    def audit(sender, event, ldap_object, **kwargs):
        ...

Exceptions raised by receivers propagate to whoever triggered the event, so
a "before" receiver can veto an operation by raising.
"""

from django.dispatch import Signal

from .objects import LdapObject


class Event:
    """The event kinds the object manager fires."""

    LDAP_OBJECT_BEFORE_MODIFY = "ldap.object.before_modify"
    LDAP_OBJECT_AFTER_MODIFY = "ldap.object.after_modify"
    LDAP_OBJECT_BEFORE_DELETE = "ldap.object.before_delete"
    LDAP_OBJECT_AFTER_DELETE = "ldap.object.after_delete"
    LDAP_OBJECT_BEFORE_MOVE = "ldap.object.before_move"
    LDAP_OBJECT_AFTER_MOVE = "ldap.object.after_move"


class LdapObjectEvent:
    """
    An event concerning a single :py:class:`~ldapom.objects.LdapObject`.

    Args:
        name: One of the :py:class:`Event` kinds.
        ldap_object: The object the event is about.

    """

    def __init__(self, name: str, ldap_object: LdapObject) -> None:
        self.name = name
        self.ldap_object = ldap_object

    def __repr__(self) -> str:
        return f"<LdapObjectEvent: {self.name} {self.ldap_object.dn}>"


ldap_object_before_modify = Signal()
ldap_object_after_modify = Signal()
ldap_object_before_delete = Signal()
ldap_object_after_delete = Signal()
ldap_object_before_move = Signal()
ldap_object_after_move = Signal()

#: Which signal carries which event kind
SIGNALS: dict[str, Signal] = {
    Event.LDAP_OBJECT_BEFORE_MODIFY: ldap_object_before_modify,
    Event.LDAP_OBJECT_AFTER_MODIFY: ldap_object_after_modify,
    Event.LDAP_OBJECT_BEFORE_DELETE: ldap_object_before_delete,
    Event.LDAP_OBJECT_AFTER_DELETE: ldap_object_after_delete,
    Event.LDAP_OBJECT_BEFORE_MOVE: ldap_object_before_move,
    Event.LDAP_OBJECT_AFTER_MOVE: ldap_object_after_move,
}


class EventDispatcher:
    """
    Sends :py:class:`LdapObjectEvent` instances out over the matching
    Django signal.
    """

    def dispatch(self, event: LdapObjectEvent) -> None:
        """
        Fire ``event``.

        Args:
            event: The event to fire.

        Raises:
            KeyError: ``event.name`` is not a known event kind.

        """
        SIGNALS[event.name].send(
            sender=LdapObject, event=event, ldap_object=event.ldap_object
        )
