"""Build orchestration module.

This module handles:
- Single-flight admission control (BuildSlot)
- Safe staging of uploaded archives
- Running the external image builder and pusher
- The end-to-end build pipeline with guaranteed cleanup
"""

from vddk_builder.builds.slot import BuildSlot, SlotBusyError

__all__ = ["BuildSlot", "SlotBusyError"]

# Access the pipeline via vddk_builder.builds.service, runners via
# vddk_builder.builds.runner, etc.
