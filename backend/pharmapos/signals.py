# Overview: Named session-change signals any component may subscribe to.

"""
Session-change notifications.

Senders pass the User as the signal sender plus keyword context:

    session_started.send(user, session=session_row, ip_address=...)
    session_ended.send(user, reason="User logout")
    profile_changed.send(user, profile=profile, changes={"role": ("Cashier", "Stock Manager")})

Receivers must not commit partial business work; the audit receiver only
appends SecurityEvent rows.
"""

from blinker import Namespace


_signals = Namespace()

session_started = _signals.signal("session-started")
session_ended = _signals.signal("session-ended")
profile_changed = _signals.signal("profile-changed")
