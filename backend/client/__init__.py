from .connection import GatewayConnection
from .directory_api import DirectoryAPI
from .media import LocalMedia
from .session_client import ClientState, SessionClient, retry_delay

__all__ = [
    "SessionClient",
    "ClientState",
    "retry_delay",
    "DirectoryAPI",
    "GatewayConnection",
    "LocalMedia",
]
