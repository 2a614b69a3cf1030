"""
Playback signal sources.

Deployment modes:
    push   - event-driven sources only
    poll   - automation-bridge polling only
    hybrid - both; the Reconciler merges them
"""
import platform
from typing import List, Optional

from logging_config import get_logger
from .base import BaseSignalSource, SourceCapability, SourceConfig
from .polling import (
    AppleScriptBridge,
    AutomationBridge,
    BridgeError,
    BridgeSnapshot,
    PlayerctlBridge,
    PlayerNotRunning,
    PollingBridge,
)
from .push import NotificationSource, PlayerctlFollowSource, parse_player_info, parse_playerctl_line

logger = get_logger(__name__)

MODES = ("push", "poll", "hybrid")


def build_sources(
    mode: str,
    player: str = "Music",
    poll_interval: float = 2.0,
    platform_name: Optional[str] = None,
) -> List[BaseSignalSource]:
    """
    Build the source set for a deployment mode on the current platform.

    Args:
        mode: "push", "poll" or "hybrid"
        player: Player application for AppleScript bridges (Music, Spotify)
        poll_interval: Seconds between polls
        platform_name: Override platform.system() (tests)
    """
    if mode not in MODES:
        raise ValueError(f"Unknown engine mode: {mode!r} (expected one of {', '.join(MODES)})")

    system = platform_name or platform.system()
    sources: List[BaseSignalSource] = []

    if mode in ("push", "hybrid"):
        if system == "Linux":
            sources.append(PlayerctlFollowSource())
        else:
            sources.append(NotificationSource(f"{player.lower()}_notifications"))

    if mode in ("poll", "hybrid"):
        if system == "Darwin":
            sources.append(PollingBridge(AppleScriptBridge(player), poll_interval))
        elif system == "Linux":
            sources.append(PollingBridge(PlayerctlBridge(), poll_interval))
        else:
            logger.warning(f"No polling bridge for {system}")

    logger.debug(f"Sources for {mode} mode on {system}: {[s.name for s in sources]}")
    return sources


__all__ = [
    "MODES",
    "build_sources",
    "BaseSignalSource",
    "SourceCapability",
    "SourceConfig",
    "AutomationBridge",
    "AppleScriptBridge",
    "PlayerctlBridge",
    "BridgeError",
    "BridgeSnapshot",
    "PlayerNotRunning",
    "PollingBridge",
    "NotificationSource",
    "PlayerctlFollowSource",
    "parse_player_info",
    "parse_playerctl_line",
]
