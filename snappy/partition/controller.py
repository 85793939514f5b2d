"""Dual-slot (A/B) system image abstraction."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Literal

from snappy.errors import InvalidTargetError
from snappy.locking import directory_lock

from .channel import SlotDescriptor, read_channel_config, write_channel_config

LOGGER = logging.getLogger(__name__)

SLOT_LABELS: tuple[str, str] = ("a", "b")
BOOT_STATE = "boot.json"


@dataclass(frozen=True)
class PartitionSlot:
    label: str
    role: Literal["current", "other"]
    path: Path
    descriptor: SlotDescriptor | None

    @property
    def build_number(self) -> int | None:
        return self.descriptor.build_number if self.descriptor else None


class PartitionController(ABC):
    """Boot-slot operations used by the updater; never reboots the host."""

    @abstractmethod
    def active_slot(self) -> PartitionSlot:
        """Return the slot the running system booted from."""

    @abstractmethod
    def inactive_slot(self) -> PartitionSlot:
        """Return the slot that may receive a new image."""

    @abstractmethod
    def stage_image(self, slot: PartitionSlot, content: Path, descriptor: SlotDescriptor) -> None:
        """Write an image into ``slot``; must refuse the active slot."""

    @abstractmethod
    def mark_bootable(self, slot: PartitionSlot) -> None:
        """Make ``slot`` the target of the next boot."""

    @abstractmethod
    def next_boot_slot(self) -> PartitionSlot:
        """Return the slot selected for the next boot."""

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Exclusive ownership of the inactive slot for one update."""

        yield None


class DirectoryPartitionController(PartitionController):
    """Filesystem-backed slots: ``<root>/a``, ``<root>/b`` and ``<root>/boot.json``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def active_slot(self) -> PartitionSlot:
        return self._slot(self._boot_state()["active"], "current")

    def inactive_slot(self) -> PartitionSlot:
        active = self._boot_state()["active"]
        return self._slot(_other_label(active), "other")

    def next_boot_slot(self) -> PartitionSlot:
        state = self._boot_state()
        label = state["next"]
        return self._slot(label, "current" if label == state["active"] else "other")

    def stage_image(self, slot: PartitionSlot, content: Path, descriptor: SlotDescriptor) -> None:
        active = self._boot_state()["active"]
        if slot.label == active:
            raise InvalidTargetError(f"Refusing to stage an image into active slot {slot.label!r}")
        if slot.label not in SLOT_LABELS:
            raise InvalidTargetError(f"Unknown slot {slot.label!r}")

        target = self._root / slot.label
        work_id = uuid.uuid4().hex
        incoming = self._root / f".{slot.label}.incoming-{work_id}"
        displaced = self._root / f".{slot.label}.displaced-{work_id}"
        LOGGER.info("Staging build %d (%s) into slot %s", descriptor.build_number, descriptor.channel, slot.label)
        try:
            if content.is_dir():
                shutil.copytree(content, incoming, symlinks=True)
            else:
                incoming.mkdir(parents=True)
                shutil.copy2(content, incoming / content.name)
            write_channel_config(incoming, descriptor)
            if target.exists():
                os.replace(target, displaced)
            os.replace(incoming, target)
        finally:
            shutil.rmtree(incoming, ignore_errors=True)
            shutil.rmtree(displaced, ignore_errors=True)

    def mark_bootable(self, slot: PartitionSlot) -> None:
        if slot.label not in SLOT_LABELS:
            raise InvalidTargetError(f"Unknown slot {slot.label!r}")
        if read_channel_config(self._root / slot.label) is None:
            raise InvalidTargetError(f"Slot {slot.label!r} holds no image")
        state = self._boot_state()
        state["next"] = slot.label
        self._write_boot_state(state)
        LOGGER.info("Slot %s will be used on next boot", slot.label)

    @contextmanager
    def lock(self) -> Iterator[None]:
        with directory_lock(self._root, ".partition.lock"):
            yield None

    def _slot(self, label: str, role: Literal["current", "other"]) -> PartitionSlot:
        path = self._root / label
        return PartitionSlot(label=label, role=role, path=path, descriptor=read_channel_config(path))

    def _boot_state(self) -> Dict[str, Any]:
        path = self._root / BOOT_STATE
        if not path.is_file():
            return {"active": SLOT_LABELS[0], "next": SLOT_LABELS[0]}
        try:
            state = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid boot state {path}") from exc
        active = state.get("active")
        if active not in SLOT_LABELS:
            raise ValueError(f"Boot state {path} names unknown active slot {active!r}")
        if state.get("next") not in SLOT_LABELS:
            state["next"] = active
        return state

    def _write_boot_state(self, state: Dict[str, Any]) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        path = self._root / BOOT_STATE
        fd, tmp_name = tempfile.mkstemp(dir=str(self._root), prefix=".boot-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(state, handle, indent=2, sort_keys=True)
                handle.write("\n")
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _other_label(label: str) -> str:
    return SLOT_LABELS[1] if label == SLOT_LABELS[0] else SLOT_LABELS[0]


__all__ = [
    "BOOT_STATE",
    "DirectoryPartitionController",
    "PartitionController",
    "PartitionSlot",
    "SLOT_LABELS",
]
