"""
Host specific default locations for the emulator tooling.

Genymotion and VirtualBox install into fixed, per-OS locations. These
defaults are used whenever the `[emulator]` configuration leaves a path empty.
"""

import os
import sys
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional


class HostOS(Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"


def current_host(platform: Optional[str] = None) -> HostOS:
    """Map a `sys.platform` value to the host family."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return HostOS.WINDOWS
    if platform == "darwin":
        return HostOS.MACOS
    return HostOS.LINUX


def default_player_path(host: HostOS, home: Optional[Path] = None) -> Path:
    """Location of the Genymotion `player` executable."""
    if host is HostOS.WINDOWS:
        return Path("C:/Program Files/Genymobile/Genymotion/player.exe")
    if host is HostOS.MACOS:
        return Path("/Applications/Genymotion.app/Contents/MacOS/player.app/Contents/MacOS/player")
    return (home or Path.home()) / "genymotion" / "player"


def default_vbox_manage_path(host: HostOS, env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Location of `VBoxManage`.

    On Windows the VirtualBox installer exports its directory as
    VBOX_MSI_INSTALL_PATH; elsewhere the tool is expected on PATH.
    """
    env = os.environ if env is None else env
    if host is HostOS.WINDOWS:
        install_dir = env.get("VBOX_MSI_INSTALL_PATH")
        if not install_dir:
            raise FileNotFoundError(
                "VBOX_MSI_INSTALL_PATH is not set; install VirtualBox or configure emulator.vbox_manage_path"
            )
        return Path(install_dir) / "VBoxManage.exe"
    return Path("VBoxManage")


def default_genymobile_dir(host: HostOS, env: Optional[Mapping[str, str]] = None,
                           home: Optional[Path] = None) -> Path:
    """Directory where Genymotion keeps its per-device state."""
    env = os.environ if env is None else env
    if host is HostOS.WINDOWS:
        local_app_data = env.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / "Genymobile"
    return (home or Path.home()) / ".Genymobile"


def player_log_path(genymobile_dir: Path, device: str) -> Path:
    """Log file the player writes for a deployed device."""
    return genymobile_dir / "Genymotion" / "deployed" / device / "genymotion-player.log"
