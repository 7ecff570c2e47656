from .auth import AuthVerifier
from .directory import SessionDirectory
from .gateway import SessionGateway
from .presence import PresenceRegistry

__all__ = ["AuthVerifier", "SessionDirectory", "SessionGateway", "PresenceRegistry"]
