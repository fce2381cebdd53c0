"""Remote mirroring over SSH and WSL."""

from skillmesh.remote.ssh import SSHTransport, check_connection
from skillmesh.remote.transport import RemoteTransport, remote_path
from skillmesh.remote.wsl import WSLTransport, detect_wsl

__all__ = [
    "RemoteTransport",
    "SSHTransport",
    "WSLTransport",
    "check_connection",
    "detect_wsl",
    "remote_path",
]
