"""Per-slot system image channel configuration."""

from __future__ import annotations

import configparser
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

CHANNEL_CONFIG = Path("etc") / "system-image" / "channel.ini"


@dataclass(frozen=True, order=True)
class SlotDescriptor:
    channel: str
    build_number: int


def read_channel_config(slot_root: Path) -> SlotDescriptor | None:
    """Return the descriptor recorded in a slot, or ``None`` for an empty slot."""

    path = slot_root / CHANNEL_CONFIG
    if not path.is_file():
        return None
    parser = configparser.ConfigParser()
    try:
        parser.read(path, encoding="utf-8")
        return SlotDescriptor(
            channel=parser.get("service", "channel"),
            build_number=parser.getint("service", "build_number"),
        )
    except (configparser.Error, ValueError) as exc:
        raise ValueError(f"Invalid channel config {path}") from exc


def write_channel_config(slot_root: Path, descriptor: SlotDescriptor) -> Path:
    path = slot_root / CHANNEL_CONFIG
    path.parent.mkdir(parents=True, exist_ok=True)
    parser = configparser.ConfigParser()
    parser["service"] = {
        "channel": descriptor.channel,
        "build_number": str(descriptor.build_number),
    }
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".channel-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            parser.write(handle)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


__all__ = ["CHANNEL_CONFIG", "SlotDescriptor", "read_channel_config", "write_channel_config"]
