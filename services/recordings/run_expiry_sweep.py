"""Expire abandoned upload sessions and abort their multipart uploads.

Meant to run periodically (cron or a scheduler job):

    python -m services.recordings.run_expiry_sweep
"""

from __future__ import annotations

import logging

from .application.expire_upload_sessions import ExpireUploadSessionsUseCase
from .config import load_config
from .infrastructure.db import create_session_factory
from .infrastructure.s3_storage import S3MultipartStorage
from .infrastructure.upload_sessions import PostgresUploadSessionRepository

logger = logging.getLogger(__name__)


def main() -> int:
    cfg = load_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    storage = S3MultipartStorage(
        endpoint_url=cfg.storage_endpoint_url,
        public_endpoint_url=cfg.storage_public_endpoint_url,
        region_name=cfg.storage_region,
        bucket_name=cfg.storage_bucket,
        access_key=cfg.storage_access_key,
        secret_key=cfg.storage_secret_key,
    )
    session_repository = PostgresUploadSessionRepository(
        session_factory=create_session_factory(cfg.sqlalchemy_dsn)
    )
    expired = ExpireUploadSessionsUseCase(
        storage=storage, session_repository=session_repository
    ).execute()
    logger.info("Expiry sweep finished: %d session(s) expired", expired)
    return expired


if __name__ == "__main__":
    main()
