"""Publish the latest reading to a file for an external consumer.

The consumer deletes the file once it has read it; a new reading is written
only when no file is present, so each published line is seen at most once.
The line is written to a temporary sibling and renamed into place so the
consumer never observes a partial write.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from dmmlink_gwinstek.models import DecodedMeasurement

logger = logging.getLogger(__name__)

PUBLISH_MODE = stat.S_IRUSR | stat.S_IWUSR | stat.S_IROTH | stat.S_IWOTH


def format_published_line(measurement: DecodedMeasurement) -> str:
    """Return the ``"<value>\\t<mode tag>"`` line for *measurement*."""
    return f"{measurement.display_value}\t{measurement.mode_tag}"


def publish_measurement(measurement: DecodedMeasurement, path: str | Path) -> bool:
    """Write *measurement* to *path* unless a file is already there.

    Args:
        measurement: The reading to publish.
        path: Destination file.

    Returns:
        True if the reading was written, False if *path* already existed.

    Raises:
        OSError: If the file could not be written.
    """
    path = Path(path)
    if path.exists():
        return False
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(format_published_line(measurement), encoding="utf-8")
    os.chmod(tmp_path, PUBLISH_MODE)
    os.replace(tmp_path, path)
    logger.debug("Published %r to %s", measurement.display_value, path)
    return True
