"""Retrying B2 client.

Wraps the one-shot Client so that every logical operation authorizes as
needed, retries transient failures with exponential backoff, re-authorizes
on expired tokens and, for uploads, fetches fresh upload URLs as described
in B2's integration guide.
"""
import logging
from dataclasses import replace
from enum import Enum
from typing import BinaryIO, Callable, Optional, Tuple, TypeVar

import requests

from .auth_cache import AuthTokenCache
from .backoff import exp_backoff
from .classifier import ClassifiedError, ErrorKind, classify
from .client import Client
from .config import ClientConfig, Credentials, RetryConfig
from .context import CallContext
from .errors import AttemptsExceeded, B2Error, CancellationRequested, MissingAuthorization
from .models import (
    AuthToken,
    Bucket,
    CancelLargeFileResponse,
    DeleteFileResponse,
    DownloadAuthorization,
    FilePart,
    FileVersion,
    Key,
    ListBucketsResponse,
    ListFileNamesResponse,
    ListFileVersionsResponse,
    ListKeysResponse,
    ListPartsResponse,
    ListUnfinishedLargeFilesResponse,
    UploadFileOptions,
    UploadPartOptions,
    UploadURL,
)
from .storage import TempStorage, is_seekable, read_length

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _State(Enum):
    """States of one logical call. Failure leaves the loop by raising."""
    NEED_AUTH = "need_auth"
    AUTHORIZED = "authorized"
    NEED_UPLOAD_URL = "need_upload_url"
    UPLOADING = "uploading"
    DONE = "done"


class AttemptState:
    """Failed-attempt counter for one logical call."""

    def __init__(self, max_attempts: int):
        self.max_attempts = max_attempts
        self.attempts = 0

    def record(self) -> int:
        self.attempts += 1
        return self.attempts

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


def _cancellation(ctx: CallContext) -> CancellationRequested:
    return ctx.error() or CancellationRequested("deadline exceeded", deadline_exceeded=True)


class RetryClient:
    """B2 client that authorizes as needed and retries transient failures.

    Safe to share between threads: each call keeps its own attempt counter
    and sleeps on its own context; only the auth token cache is shared.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        client: Optional[Client] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """Initialize the retry client.

        Args:
            credentials: Key id and application key used to (re-)authorize
            client: One-shot client to drive, a default Client if omitted
            retry_config: Retry settings, zero fields fall back to defaults
        """
        self.credentials = credentials or Credentials()
        self.client = client or Client()
        self.retry_config = (retry_config or RetryConfig()).resolved()

    @classmethod
    def from_config(cls, config: ClientConfig, session: Optional[requests.Session] = None,
                    temp_storage: Optional[TempStorage] = None) -> "RetryClient":
        client = Client(
            session=session,
            api_url=config.api_url,
            timeout=config.timeout,
            user_agent=config.user_agent,
            temp_storage=temp_storage,
            test_mode=config.test_mode,
        )
        return cls(credentials=config.credentials, client=client, retry_config=config.retry)

    @classmethod
    def from_env(cls, prefix: str = "") -> "RetryClient":
        return cls.from_config(ClientConfig.from_env(prefix))

    @property
    def auth_cache(self) -> AuthTokenCache:
        return self.client.auth_cache

    def invalidate_authorization(self):
        """Drop the cached auth token so the next call re-authorizes."""
        self.client.invalidate_authorization()

    # -- retry machinery ------------------------------------------------

    def _handle_failure(self, exc: B2Error, attempts: AttemptState, ctx: CallContext,
                        operation: str, upload: bool = False) -> ClassifiedError:
        """Decide what to do about a failed attempt.

        Raises the error (or a cancellation / AttemptsExceeded wrapping it)
        when the call must stop; otherwise sleeps and returns the
        classification so the caller can pick its next state.
        """
        classified = classify(exc, ctx, upload=upload)
        if classified.kind is ErrorKind.CANCELLED:
            if isinstance(exc, CancellationRequested):
                raise exc
            raise _cancellation(ctx) from exc
        if not classified.retryable:
            raise exc

        attempt = attempts.record()
        if attempts.exhausted:
            logger.error(f"Giving up {operation} after {attempt} attempts: {exc}")
            raise AttemptsExceeded(operation, attempt, exc) from exc

        if classified.retry_after:
            delay = classified.retry_after
        else:
            rc = self.retry_config
            delay = exp_backoff(attempt - 1, rc.jitter, rc.min_delay, rc.max_delay, rc.unit)
        logger.warning(
            f"Attempt {attempt}/{attempts.max_attempts} {operation} failed "
            f"({classified.kind.value}): {exc}; retrying in {delay:.2f}s"
        )
        if not ctx.sleep(delay):
            raise _cancellation(ctx) from exc
        return classified

    def _authorize(self, ctx: CallContext, attempts: AttemptState) -> AuthToken:
        token = self.auth_cache.get()
        if token is not None:
            return token
        if not self.credentials:
            raise MissingAuthorization("no auth token cached and no credentials to authorize with")

        while True:
            try:
                return self.client.authorize(self.credentials.key_id, self.credentials.app_key, ctx)
            except B2Error as exc:
                # expired-auth needs no invalidation here, it just retries
                self._handle_failure(exc, attempts, ctx, "authorizing")

    def authorize_if_needed(self, ctx: Optional[CallContext] = None) -> AuthToken:
        """Return the cached auth token, authorizing with retries if there is none."""
        ctx = ctx or CallContext.background()
        return self._authorize(ctx, AttemptState(self.retry_config.max_attempts))

    def _run(self, operation: str, fn: Callable[[CallContext, AuthToken], T],
             ctx: Optional[CallContext] = None) -> T:
        """Drive one logical account-level call to completion."""
        ctx = ctx or CallContext.background()
        attempts = AttemptState(self.retry_config.max_attempts)
        token = None
        result = None
        state = _State.NEED_AUTH

        while state is not _State.DONE:
            ctx.raise_if_done()
            if state is _State.NEED_AUTH:
                token = self._authorize(ctx, attempts)
                state = _State.AUTHORIZED
            elif state is _State.AUTHORIZED:
                try:
                    result = fn(ctx, token)
                    state = _State.DONE
                except B2Error as exc:
                    classified = self._handle_failure(exc, attempts, ctx, operation)
                    if classified.needs_reauth:
                        logger.info(f"Auth token expired while {operation}, re-authorizing")
                        self.client.invalidate_authorization(token)
                        state = _State.NEED_AUTH
        return result

    def _run_upload(self, operation: str, fetch_url: Callable[[CallContext, AuthToken], UploadURL],
                    send: Callable[[UploadURL, CallContext], T],
                    ctx: Optional[CallContext] = None) -> T:
        """Drive an upload: authorize, get an upload URL, send.

        A failed send that leaves the upload URL in doubt (expired upload
        token, 5xx, dropped connection) goes back for a new URL; other
        retryable failures resend to the same one.
        """
        ctx = ctx or CallContext.background()
        attempts = AttemptState(self.retry_config.max_attempts)
        token = None
        upload_url = None
        result = None
        state = _State.NEED_AUTH

        while state is not _State.DONE:
            ctx.raise_if_done()
            if state is _State.NEED_AUTH:
                token = self._authorize(ctx, attempts)
                state = _State.NEED_UPLOAD_URL
            elif state is _State.NEED_UPLOAD_URL:
                try:
                    upload_url = fetch_url(ctx, token)
                    state = _State.UPLOADING
                except B2Error as exc:
                    classified = self._handle_failure(exc, attempts, ctx, "requesting upload url")
                    if classified.needs_reauth:
                        self.client.invalidate_authorization(token)
                        state = _State.NEED_AUTH
            elif state is _State.UPLOADING:
                try:
                    result = send(upload_url, ctx)
                    state = _State.DONE
                except B2Error as exc:
                    classified = self._handle_failure(exc, attempts, ctx, operation, upload=True)
                    if classified.refresh_upload_url:
                        logger.info(f"Discarding upload url after {classified.kind.value}")
                        upload_url = None
                        state = _State.NEED_UPLOAD_URL
        return result

    def _replayable(self, body: BinaryIO, length: Optional[int]) -> Tuple[BinaryIO, int, bool]:
        """Make an upload body re-readable across attempts.

        Returns:
            (stream, length, owned); owned streams must be closed by the caller
        """
        if is_seekable(body):
            if length is None or length < 0:
                pos = body.tell()
                body.seek(0, 2)
                length = body.tell() - pos
                body.seek(pos)
            return body, length, False
        stored, length = read_length(self.client.temp_storage, body)
        return stored, length, True

    # -- uploads --------------------------------------------------------

    def upload_file(self, bucket_id: str, opt: UploadFileOptions,
                    ctx: Optional[CallContext] = None) -> FileVersion:
        """Upload a file, authorizing and fetching upload URLs as needed.

        Unseekable bodies are spooled through the client's temp storage first
        (and closed), so every attempt can resend the same bytes.
        """
        body, length, owned = self._replayable(opt.body, opt.content_length)
        start = body.tell()

        def send(upload_url: UploadURL, c: CallContext) -> FileVersion:
            body.seek(start)
            attempt = replace(opt, body=body, content_length=length)
            return self.client.upload_file(upload_url, attempt, c)

        try:
            return self._run_upload(
                "uploading file",
                lambda c, a: self.client.get_upload_url(bucket_id, ctx=c, auth=a),
                send,
                ctx,
            )
        finally:
            if owned:
                body.close()

    def upload_part(self, file_id: str, opt: UploadPartOptions,
                    ctx: Optional[CallContext] = None) -> FilePart:
        """Upload one part of a started large file."""
        body, length, owned = self._replayable(opt.body, opt.content_length)
        start = body.tell()

        def send(upload_url: UploadURL, c: CallContext) -> FilePart:
            body.seek(start)
            attempt = replace(opt, body=body, content_length=length)
            return self.client.upload_part(upload_url, attempt, c)

        try:
            return self._run_upload(
                f"uploading part {opt.part_number}",
                lambda c, a: self.client.get_upload_part_url(file_id, ctx=c, auth=a),
                send,
                ctx,
            )
        finally:
            if owned:
                body.close()

    # -- account-level operations ---------------------------------------

    def cancel_large_file(self, file_id: str, ctx: Optional[CallContext] = None) -> CancelLargeFileResponse:
        return self._run("cancelling large file",
                         lambda c, a: self.client.cancel_large_file(file_id, ctx=c, auth=a), ctx)

    def copy_file(self, source_file_id: str, file_name: str, *args,
                  ctx: Optional[CallContext] = None, **kwargs) -> FileVersion:
        return self._run("copying file",
                         lambda c, a: self.client.copy_file(source_file_id, file_name, *args, ctx=c, auth=a, **kwargs),
                         ctx)

    def copy_part(self, source_file_id: str, large_file_id: str, part_number: int,
                  range: Optional[str] = None, ctx: Optional[CallContext] = None) -> FilePart:
        return self._run("copying part",
                         lambda c, a: self.client.copy_part(source_file_id, large_file_id, part_number,
                                                         range, ctx=c, auth=a),
                         ctx)

    def create_bucket(self, bucket_name: str, bucket_type: str, *args,
                      ctx: Optional[CallContext] = None, **kwargs) -> Bucket:
        return self._run("creating bucket",
                         lambda c, a: self.client.create_bucket(bucket_name, bucket_type, *args, ctx=c, auth=a, **kwargs),
                         ctx)

    def create_key(self, key_name: str, capabilities, *args,
                   ctx: Optional[CallContext] = None, **kwargs) -> Key:
        return self._run("creating key",
                         lambda c, a: self.client.create_key(key_name, capabilities, *args, ctx=c, auth=a, **kwargs),
                         ctx)

    def delete_bucket(self, bucket_id: str, ctx: Optional[CallContext] = None) -> Bucket:
        return self._run("deleting bucket", lambda c, a: self.client.delete_bucket(bucket_id, ctx=c, auth=a), ctx)

    def delete_file_version(self, file_id: str, file_name: str,
                            ctx: Optional[CallContext] = None) -> DeleteFileResponse:
        return self._run("deleting file version",
                         lambda c, a: self.client.delete_file_version(file_id, file_name, ctx=c, auth=a), ctx)

    def delete_key(self, application_key_id: str, ctx: Optional[CallContext] = None) -> Key:
        return self._run("deleting key", lambda c, a: self.client.delete_key(application_key_id, ctx=c, auth=a), ctx)

    def download_file_by_id(self, file_id: str, opt=None,
                            ctx: Optional[CallContext] = None) -> requests.Response:
        return self._run("downloading file",
                         lambda c, a: self.client.download_file_by_id(file_id, opt, ctx=c, auth=a), ctx)

    def download_file_by_name(self, bucket_name: str, file_name: str, opt=None,
                              ctx: Optional[CallContext] = None) -> requests.Response:
        return self._run("downloading file",
                         lambda c, a: self.client.download_file_by_name(bucket_name, file_name, opt, ctx=c, auth=a),
                         ctx)

    def finish_large_file(self, file_id: str, part_sha1s,
                          ctx: Optional[CallContext] = None) -> FileVersion:
        """Combine uploaded parts. If this times out, check get_file_info before retrying by hand."""
        return self._run("finishing large file",
                         lambda c, a: self.client.finish_large_file(file_id, part_sha1s, ctx=c, auth=a), ctx)

    def get_download_authorization(self, bucket_id: str, file_name_prefix: str,
                                   valid_duration_seconds: int, *args,
                                   ctx: Optional[CallContext] = None, **kwargs) -> DownloadAuthorization:
        return self._run("getting download authorization",
                         lambda c, a: self.client.get_download_authorization(
                             bucket_id, file_name_prefix, valid_duration_seconds, *args, ctx=c, auth=a, **kwargs),
                         ctx)

    def get_file_info(self, file_id: str, ctx: Optional[CallContext] = None) -> FileVersion:
        return self._run("getting file info", lambda c, a: self.client.get_file_info(file_id, ctx=c, auth=a), ctx)

    def hide_file(self, bucket_id: str, file_name: str, ctx: Optional[CallContext] = None) -> FileVersion:
        return self._run("hiding file", lambda c, a: self.client.hide_file(bucket_id, file_name, ctx=c, auth=a), ctx)

    def list_buckets(self, *args, ctx: Optional[CallContext] = None, **kwargs) -> ListBucketsResponse:
        return self._run("listing buckets", lambda c, a: self.client.list_buckets(*args, ctx=c, auth=a, **kwargs), ctx)

    def list_file_names(self, bucket_id: str, *args, ctx: Optional[CallContext] = None,
                        **kwargs) -> ListFileNamesResponse:
        return self._run("listing file names",
                         lambda c, a: self.client.list_file_names(bucket_id, *args, ctx=c, auth=a, **kwargs), ctx)

    def list_file_versions(self, bucket_id: str, *args, ctx: Optional[CallContext] = None,
                           **kwargs) -> ListFileVersionsResponse:
        return self._run("listing file versions",
                         lambda c, a: self.client.list_file_versions(bucket_id, *args, ctx=c, auth=a, **kwargs), ctx)

    def list_keys(self, *args, ctx: Optional[CallContext] = None, **kwargs) -> ListKeysResponse:
        return self._run("listing keys", lambda c, a: self.client.list_keys(*args, ctx=c, auth=a, **kwargs), ctx)

    def list_parts(self, file_id: str, *args, ctx: Optional[CallContext] = None,
                   **kwargs) -> ListPartsResponse:
        return self._run("listing parts",
                         lambda c, a: self.client.list_parts(file_id, *args, ctx=c, auth=a, **kwargs), ctx)

    def list_unfinished_large_files(self, bucket_id: str, *args, ctx: Optional[CallContext] = None,
                                    **kwargs) -> ListUnfinishedLargeFilesResponse:
        return self._run("listing unfinished large files",
                         lambda c, a: self.client.list_unfinished_large_files(bucket_id, *args, ctx=c, auth=a, **kwargs),
                         ctx)

    def start_large_file(self, bucket_id: str, file_name: str, *args,
                         ctx: Optional[CallContext] = None, **kwargs) -> FileVersion:
        return self._run("starting large file",
                         lambda c, a: self.client.start_large_file(bucket_id, file_name, *args, ctx=c, auth=a, **kwargs),
                         ctx)

    def update_bucket(self, bucket_id: str, *args, ctx: Optional[CallContext] = None, **kwargs) -> Bucket:
        return self._run("updating bucket",
                         lambda c, a: self.client.update_bucket(bucket_id, *args, ctx=c, auth=a, **kwargs), ctx)
