from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable
import logging
import threading
import time

from ..core.clock import utcnow
from ..core.config import AttachmentConfig, get_attachment_config
from ..core.errors import ObjectStoreError
from ..core.storage import ObjectStoreGateway, get_object_store
from ..db import SessionLocal
from ..models.attachment import AttachmentState
from .attachment_repository import AttachmentRepository, SqlAttachmentRepository
from .attachment_service import delete_object_with_retry

logger = logging.getLogger(__name__)


@dataclass
class ReapResult:
    scanned: int = 0
    reaped: int = 0
    failed: int = 0
    skipped: int = 0


class OrphanReaper:
    """Reclaims PENDING attachments that were never confirmed.

    A record is reaped once its ``created_at`` is older than
    ``config.pending_max_age``: the object is deleted first (a missing object
    is fine), then the row. A record whose object cannot be deleted stays for
    the next run. A record confirmed after the scan is skipped and kept.
    """

    def __init__(
        self,
        repository: AttachmentRepository,
        object_store: ObjectStoreGateway,
        config: AttachmentConfig,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repository = repository
        self.object_store = object_store
        self.config = config
        self._clock = clock
        self._sleep = sleep

    def run_once(self) -> ReapResult:
        cutoff = self._clock() - self.config.pending_max_age
        result = ReapResult()
        for record in self.repository.list_pending_before(cutoff):
            result.scanned += 1
            current = self.repository.get_current(record.id)
            if current is None or current.state is not AttachmentState.PENDING:
                result.skipped += 1
                logger.info("orphan reap skipped: attachment_id=%s no longer pending", record.id)
                continue
            try:
                delete_object_with_retry(
                    self.object_store,
                    self.config.bucket,
                    record.object_key,
                    max_attempts=self.config.delete_max_attempts,
                    retry_delay_seconds=self.config.delete_retry_delay_seconds,
                    sleep=self._sleep,
                )
            except ObjectStoreError:
                result.failed += 1
                logger.exception("orphan reap failed: attachment_id=%s key=%s", record.id, record.object_key)
                continue
            if not self.repository.delete_if_pending(record.id):
                # confirm landed between the re-read and the object delete
                result.skipped += 1
                logger.warning(
                    "orphan reap raced with confirm: attachment_id=%s key=%s", record.id, record.object_key
                )
                continue
            result.reaped += 1

        if result.scanned:
            logger.info(
                "orphan reaper run: cutoff=%s scanned=%d reaped=%d failed=%d skipped=%d",
                cutoff.isoformat(),
                result.scanned,
                result.reaped,
                result.failed,
                result.skipped,
            )
        return result


def reap_orphans_once(config: AttachmentConfig | None = None) -> ReapResult:
    cfg = config or get_attachment_config()
    with SessionLocal() as session:
        reaper = OrphanReaper(SqlAttachmentRepository(session), get_object_store(), cfg)
        return reaper.run_once()


def _reaper_loop(cfg: AttachmentConfig, stop: threading.Event) -> None:
    interval = cfg.reaper_interval.total_seconds()
    while not stop.is_set():
        try:
            reap_orphans_once(cfg)
        except Exception:
            logger.exception("orphan reaper failed")
        stop.wait(interval)


def start_attachment_reaper_thread(config: AttachmentConfig | None = None) -> threading.Event | None:
    """Start the periodic reaper; returns an event that stops it when set."""
    cfg = config or get_attachment_config()
    if not cfg.reaper_enabled:
        logger.info("orphan reaper disabled")
        return None
    stop = threading.Event()
    t = threading.Thread(target=_reaper_loop, args=(cfg, stop), name="attachment-reaper", daemon=True)
    t.start()
    logger.info(
        "orphan reaper started: every %ds, pending max age %ds",
        int(cfg.reaper_interval.total_seconds()),
        int(cfg.pending_max_age.total_seconds()),
    )
    return stop
