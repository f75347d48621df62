"""
Password gate.

A local lock in front of the app: the first visit sets a password, later
visits must enter it. The password lives in the local key-value store next
to the expenses, in plain text. It keeps a casual onlooker out of the app;
it is not meant to protect the data file.

The password is shared by every user of the store, but being unlocked is
per viewer: each gate keeps its flag in a state mapping, which the Streamlit
app binds to the browser session.
"""

import hmac
from typing import Any, MutableMapping, Optional

import structlog

from vozfinancas.audit import AuditLogger
from vozfinancas.models.audit import AuditEventBuilder, AuditEventType
from vozfinancas.services.storage.interface import KeyValueStoreInterface


log = structlog.get_logger(__name__)

UNLOCKED_KEY = "vozfinancas_unlocked"


class GateError(Exception):
    """Base exception for lock screen errors."""
    pass


class PasswordTooShortError(GateError):
    pass


class PasswordGate:
    """
    Usage:
        gate = PasswordGate(kv)
        if gate.needs_setup:
            gate.setup("1234")
        gate.unlock("1234")  # True

        # One flag per browser session
        session_gate = gate.bind(st.session_state)
    """

    def __init__(
        self,
        kv: KeyValueStoreInterface,
        key: str = "vozfinancas_password",
        min_length: int = 4,
        audit_logger: Optional[AuditLogger] = None,
        state: Optional[MutableMapping[str, Any]] = None,
    ):
        self._kv = kv
        self._key = key
        self.min_length = min_length
        self._audit = audit_logger or AuditLogger()
        self._state = state if state is not None else {}

    def bind(self, state: MutableMapping[str, Any]) -> "PasswordGate":
        """A gate on the same password whose unlocked flag lives in state."""
        return PasswordGate(self._kv, self._key, self.min_length, self._audit, state=state)

    @property
    def needs_setup(self) -> bool:
        return not self._kv.get_item(self._key)

    @property
    def is_locked(self) -> bool:
        return not self._state.get(UNLOCKED_KEY, False)

    def setup(self, password: str) -> None:
        """
        Set the password and unlock.

        Raises:
            PasswordTooShortError: Shorter than min_length
            GateError: A password is already set
        """
        if not self.needs_setup:
            raise GateError("Password already set")
        if len(password) < self.min_length:
            raise PasswordTooShortError(
                f"A senha deve ter pelo menos {self.min_length} caracteres."
            )
        self._kv.set_item(self._key, password)
        self._state[UNLOCKED_KEY] = True
        self._audit.log(AuditEventBuilder.gate_event(AuditEventType.GATE_SETUP))

    def unlock(self, password: str) -> bool:
        stored = self._kv.get_item(self._key)
        if not stored:
            return False
        ok = hmac.compare_digest(str(stored).encode("utf-8"), password.encode("utf-8"))
        self._state[UNLOCKED_KEY] = ok
        self._audit.log(
            AuditEventBuilder.gate_event(
                AuditEventType.GATE_UNLOCKED if ok else AuditEventType.GATE_FAILED
            )
        )
        return ok

    def lock(self) -> None:
        self._state[UNLOCKED_KEY] = False
        log.info("gate_locked")
