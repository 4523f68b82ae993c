from .identity import Identity, SessionIdentityVerifier

__all__ = ["Identity", "SessionIdentityVerifier"]
