"""Lock screen package."""

from vozfinancas.auth.gate import GateError, PasswordGate, PasswordTooShortError

__all__ = ["GateError", "PasswordGate", "PasswordTooShortError"]
