"""Install option flags."""

from __future__ import annotations

import enum


class InstallFlags(enum.IntFlag):
    """Independent install options; absence of a flag is the conservative default."""

    NONE = 0
    ALLOW_UNAUTHENTICATED = 1
    DO_INSTALL_GC = 2
    INHIBIT_HOOKS = 4


__all__ = ["InstallFlags"]
