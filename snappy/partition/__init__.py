"""Dual-slot system image partitions."""

from .channel import CHANNEL_CONFIG, SlotDescriptor, read_channel_config, write_channel_config
from .controller import DirectoryPartitionController, PartitionController, PartitionSlot

__all__ = [
    "CHANNEL_CONFIG",
    "DirectoryPartitionController",
    "PartitionController",
    "PartitionSlot",
    "SlotDescriptor",
    "read_channel_config",
    "write_channel_config",
]
