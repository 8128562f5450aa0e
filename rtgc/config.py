"""
RTGC configuration.
"""

from __future__ import annotations

import os
import string
from dataclasses import dataclass, field
from typing import Any


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RoomConfig:
    """Per-room policy.

    Attributes:
        name: Display name for the room.
        require_invitation: Gate group joins on a pending invitation.
            The default group is never gated.
        metadata: Free-form application data.
    """

    name: str = ""
    require_invitation: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RTGCConfig:
    """Top-level configuration for a RoomManager.

    Attributes:
        share_url_base: Base URL used to build share links.
        code_length: Length of generated room/group codes.
        code_alphabet: Characters codes are drawn from.
        max_issue_attempts: Random draws before the issuer gives up.
        check_invariants: Verify membership invariants after every commit.
        room_defaults: Policy applied to rooms created without their own.
    """

    share_url_base: str = field(
        default_factory=lambda: os.environ.get("RTGC_SHARE_URL_BASE", "https://rtgc.local")
    )
    code_length: int = field(
        default_factory=lambda: int(os.environ.get("RTGC_CODE_LENGTH", "6"))
    )
    code_alphabet: str = string.ascii_uppercase + string.digits
    max_issue_attempts: int = 64
    check_invariants: bool = field(
        default_factory=lambda: _env_flag("RTGC_CHECK_INVARIANTS")
    )
    room_defaults: RoomConfig = field(default_factory=RoomConfig)

    def __post_init__(self):
        if self.code_length < 1:
            raise ValueError(f"code_length must be >= 1, got {self.code_length}")
        if len(set(self.code_alphabet)) < 2:
            raise ValueError("code_alphabet must contain at least 2 distinct characters")
        if self.max_issue_attempts < 1:
            raise ValueError(
                f"max_issue_attempts must be >= 1, got {self.max_issue_attempts}"
            )
        self.share_url_base = self.share_url_base.rstrip("/")

    @property
    def code_capacity(self) -> int:
        """Number of distinct codes the configuration can produce."""
        return len(set(self.code_alphabet)) ** self.code_length
