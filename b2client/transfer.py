"""Large file uploads on top of the RetryClient."""
import hashlib
import io
import logging
from typing import BinaryIO, Dict, List, Optional

from .config import TransferConfig
from .context import CallContext
from .helpers import millis
from .models import AuthToken, FileVersion, UploadFileOptions, UploadPartOptions
from .retry_client import RetryClient

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE = 100 * 1000 * 1000  # bytes, used when the account reports none


class LargeFileUploader:
    """Handles B2 large file uploads part by part."""

    def __init__(self, retry_client: RetryClient, config: Optional[TransferConfig] = None):
        self.retry_client = retry_client
        self.config = config or TransferConfig()

    def should_use_large_file(self, file_size: int) -> bool:
        """Determine if a large file upload should be used."""
        return file_size >= self.config.large_file_threshold

    def get_part_size(self, file_size: int, auth: AuthToken) -> int:
        """Calculate the part size for a file of ``file_size`` bytes."""
        part_size = self.config.part_size or auth.recommended_part_size or DEFAULT_PART_SIZE
        part_size = max(part_size, auth.absolute_minimum_part_size)

        # Ensure we don't exceed maximum number of parts
        min_part_size = -(-file_size // self.config.max_parts)
        if part_size < min_part_size:
            part_size = min_part_size

        return part_size

    def upload(self, bucket_id: str, opt: UploadFileOptions,
               ctx: Optional[CallContext] = None) -> FileVersion:
        """Upload ``opt.body`` as a plain or a large file depending on its size.

        ``opt.content_length`` must be known to pick a large file upload;
        bodies of unknown length always go through a plain upload.
        """
        if opt.content_length is None or not self.should_use_large_file(opt.content_length):
            return self.retry_client.upload_file(bucket_id, opt, ctx)

        file_info: Dict[str, str] = {}
        if opt.src_last_modified is not None:
            file_info["src_last_modified_millis"] = millis(opt.src_last_modified)
        return self.upload_large_file(
            bucket_id, opt.file_name, opt.body, opt.content_length,
            content_type=opt.content_type, file_info=file_info or None, ctx=ctx,
        )

    def upload_large_file(self, bucket_id: str, file_name: str, body: BinaryIO, file_size: int,
                          content_type: Optional[str] = None,
                          file_info: Optional[Dict[str, str]] = None,
                          ctx: Optional[CallContext] = None) -> FileVersion:
        """Start a large file, upload its parts in order and finish it.

        The large file is cancelled if any part fails, so no unfinished
        upload is left behind.
        """
        auth = self.retry_client.authorize_if_needed(ctx)
        part_size = self.get_part_size(file_size, auth)
        started = self.retry_client.start_large_file(
            bucket_id, file_name, content_type, file_info, ctx=ctx
        )
        logger.info(f"Started large file {file_name} ({started.file_id}), {part_size} byte parts")

        try:
            part_sha1s = self._upload_parts(started.file_id, body, part_size, ctx)
            finished = self.retry_client.finish_large_file(started.file_id, part_sha1s, ctx=ctx)
        except Exception:
            logger.error(f"Large file upload of {file_name} failed, cancelling {started.file_id}")
            try:
                # no ctx, the cleanup has to run even when the caller cancelled
                self.retry_client.cancel_large_file(started.file_id)
            except Exception as cancel_exc:
                logger.error(f"Failed to cancel large file {started.file_id}: {cancel_exc}")
            raise

        logger.info(f"Finished large file {file_name} in {len(part_sha1s)} parts")
        return finished

    def _upload_parts(self, file_id: str, body: BinaryIO, part_size: int,
                      ctx: Optional[CallContext]) -> List[str]:
        part_sha1s = []
        part_number = 1
        while True:
            chunk = body.read(part_size)
            if not chunk:
                break
            sha1 = hashlib.sha1(chunk).hexdigest()
            self.retry_client.upload_part(
                file_id,
                UploadPartOptions(part_number, io.BytesIO(chunk), len(chunk), sha1),
                ctx,
            )
            logger.debug(f"Uploaded part {part_number} of {file_id} ({len(chunk)} bytes)")
            part_sha1s.append(sha1)
            part_number += 1
        return part_sha1s
