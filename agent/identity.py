"""
Collector Agent - Identity

Each agent install has a 128-bit collector id, generated once and stored on
disk so it survives restarts. The file holds the id as a decimal string.
"""

import uuid
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


def load_or_create_collector_id(path: str = "uuid") -> int:
    """Read the collector id from ``path``, creating it if missing.

    Raises:
        ValueError: the file exists but does not hold a valid id.
    """
    id_path = Path(path)

    if id_path.exists():
        contents = id_path.read_text().strip()
        try:
            collector_id = int(contents)
        except ValueError:
            raise ValueError(f"Invalid collector id in {path}: {contents!r}") from None
        if collector_id < 0 or collector_id >= 2 ** 128:
            raise ValueError(f"Collector id in {path} is not a 128-bit value")

        logger.info("Collector id loaded", path=path, collector_id=str(uuid.UUID(int=collector_id)))
        return collector_id

    collector_id = uuid.uuid4().int
    id_path.parent.mkdir(parents=True, exist_ok=True)
    id_path.write_text(str(collector_id))

    logger.info("Collector id created", path=path, collector_id=str(uuid.UUID(int=collector_id)))
    return collector_id
