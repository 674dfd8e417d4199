"""One-shot operations against the B2 HTTP API.

Every method performs exactly one round trip. Failures are translated into
the b2client error hierarchy here, so the retry layer never has to look at
``requests`` exceptions. Most callers want RetryClient instead.

Account-level methods take an optional ``auth`` token. Without one they read
the shared cache once per call; RetryClient passes the token it authorized
with, so a concurrent invalidation cannot pull it out from under a request.
"""
import logging
import platform
import time
from typing import Any, BinaryIO, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from .auth_cache import AuthTokenCache
from .config import DEFAULT_TIMEOUT
from .context import CallContext
from .errors import (
    ErrorResponse,
    MissingAuthorization,
    NetworkTimeout,
    TransportError,
    UnexpectedEOF,
)
from .helpers import millis
from .models import (
    AuthToken,
    Bucket,
    CancelLargeFileResponse,
    DeleteFileResponse,
    DownloadAuthorization,
    DownloadFileOptions,
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
from .readers import HashedPostfixedReader, SizedBody
from .storage import TempStorage, read_length
from .types import API_PREFIX, CLIENT_VERSION, CONTENT_TYPE_AUTO, DEFAULT_API_URL, SHA1_AT_END

logger = logging.getLogger(__name__)


def default_user_agent() -> str:
    return f"b2client/{CLIENT_VERSION}+python{platform.python_version()}"


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset optional fields from a request payload."""
    return {k: v for k, v in payload.items() if v is not None}


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def _parse(model, data: Dict[str, Any]):
    """Build ``model`` from a 200 response body.

    Raises:
        TransportError: The body lacks required fields or has the wrong shape
    """
    try:
        return model.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise TransportError(f"Malformed {model.__name__} in response: {exc!r}") from exc


def _enum_value(value):
    return str(getattr(value, "value", value))


class Client:
    """Low-level B2 client.

    Holds the shared AuthTokenCache; ``authorize`` fills it and every
    account-level request reads the bearer token from it unless given one.
    """

    def __init__(
        self,
        auth_cache: Optional[AuthTokenCache] = None,
        session: Optional[requests.Session] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: Optional[str] = None,
        temp_storage: Optional[TempStorage] = None,
        test_mode: Optional[str] = None,
    ):
        """Initialize the client.

        Args:
            auth_cache: Token cache to share, a new one by default
            session: requests session to send through
            api_url: Base URL for b2_authorize_account
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header, default_user_agent() by default
            temp_storage: Where bodies of unknown length are stored; memory by default
            test_mode: Optional X-Bz-Test-Mode header value
        """
        self.auth_cache = auth_cache if auth_cache is not None else AuthTokenCache()
        self.session = session or requests.Session()
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent or default_user_agent()
        self.temp_storage = temp_storage
        self.test_mode = test_mode

    def last_auth(self) -> Optional[AuthToken]:
        return self.auth_cache.get()

    def invalidate_authorization(self, stale: Optional[AuthToken] = None) -> bool:
        return self.auth_cache.invalidate(stale)

    def _require_auth(self, auth: Optional[AuthToken] = None) -> AuthToken:
        if auth is not None:
            return auth
        auth = self.auth_cache.get()
        if auth is None:
            raise MissingAuthorization()
        return auth

    def _headers(self, authorization: Optional[str] = None) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if authorization:
            headers["Authorization"] = authorization
        if self.test_mode:
            headers["X-Bz-Test-Mode"] = self.test_mode
        return headers

    def _request_timeout(self, ctx: Optional[CallContext]) -> float:
        if ctx is None:
            return self.timeout
        remaining = ctx.remaining()
        if remaining is None:
            return self.timeout
        return max(0.001, min(self.timeout, remaining))

    def _send(self, method: str, url: str, ctx: Optional[CallContext] = None,
              stream: bool = False, **kwargs) -> requests.Response:
        """Send one request and return the 200 response.

        Raises:
            ErrorResponse: The API answered with a non-200 status
            NetworkTimeout: Connect or read timeout
            UnexpectedEOF: The connection failed or dropped mid-transfer
            TransportError: Any other transport failure
            CancellationRequested: The context was done before sending
        """
        if ctx is not None:
            ctx.raise_if_done()

        start = time.monotonic()
        logger.debug(f"http=request method={method} url={url} raw={stream}")
        try:
            res = self.session.request(
                method, url, timeout=self._request_timeout(ctx), stream=stream, **kwargs
            )
        except requests.exceptions.Timeout as exc:
            self._log_failure(method, url, start, "timeout", exc)
            raise NetworkTimeout(str(exc)) from exc
        except (requests.exceptions.ConnectionError, requests.exceptions.ChunkedEncodingError) as exc:
            self._log_failure(method, url, start, "network", exc)
            raise UnexpectedEOF(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            self._log_failure(method, url, start, "transport", exc)
            raise TransportError(str(exc)) from exc

        duration = time.monotonic() - start
        if res.status_code != 200:
            err = self._error_from_response(res)
            res.close()
            logger.debug(
                f"http=response method={method} url={url} ok=false status={res.status_code} "
                f"duration={duration:.3f}s err_type=api-error err={err}"
            )
            raise err

        logger.debug(
            f"http=response method={method} url={url} ok=true status={res.status_code} "
            f"duration={duration:.3f}s"
        )
        return res

    @staticmethod
    def _log_failure(method, url, start, err_type, exc):
        duration = time.monotonic() - start
        logger.debug(
            f"http=response method={method} url={url} ok=false duration={duration:.3f}s "
            f"err_type={err_type} err={exc}"
        )

    @staticmethod
    def _error_from_response(res: requests.Response) -> ErrorResponse:
        retry_after = _parse_retry_after(res.headers.get("Retry-After"))
        try:
            body = res.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return ErrorResponse(res.status_code, "unknown", res.text[:200] or res.reason or "",
                                 retry_after)
        err = ErrorResponse.from_dict(body, retry_after)
        if not err.status:
            err.status = res.status_code
        return err

    @staticmethod
    def _json(res: requests.Response) -> Dict[str, Any]:
        try:
            return res.json()
        except ValueError as exc:
            raise TransportError(f"Failed to parse JSON from response: {exc}") from exc

    def _call(self, endpoint: str, payload: Dict[str, Any], model, auth: AuthToken,
              ctx: Optional[CallContext] = None):
        """POST a JSON payload to an account-level endpoint and parse the reply as ``model``."""
        url = f"{auth.api_url}{API_PREFIX}/{endpoint}"
        res = self._send("POST", url, ctx, json=_compact(payload),
                         headers=self._headers(auth.authorization_token))
        return _parse(model, self._json(res))

    # -- account --------------------------------------------------------

    def authorize(self, key_id: str, app_key: str, ctx: Optional[CallContext] = None) -> AuthToken:
        """Exchange a key id and application key for an auth token and cache it."""
        url = f"{self.api_url}{API_PREFIX}/b2_authorize_account"
        res = self._send("GET", url, ctx, auth=(key_id, app_key), headers=self._headers())
        token = _parse(AuthToken, self._json(res))
        self.auth_cache.set(token)
        logger.info(f"Authorized account {token.account_id} against {token.api_url}")
        return token

    # -- buckets --------------------------------------------------------

    def create_bucket(self, bucket_name: str, bucket_type: str,
                      bucket_info: Optional[Dict[str, Any]] = None,
                      cors_rules: Optional[List[Dict[str, Any]]] = None,
                      lifecycle_rules: Optional[List[Dict[str, Any]]] = None,
                      ctx: Optional[CallContext] = None,
                      auth: Optional[AuthToken] = None) -> Bucket:
        auth = self._require_auth(auth)
        return self._call("b2_create_bucket", {
            "accountId": auth.account_id,
            "bucketName": bucket_name,
            "bucketType": _enum_value(bucket_type),
            "bucketInfo": bucket_info,
            "corsRules": cors_rules,
            "lifecycleRules": lifecycle_rules,
        }, Bucket, auth, ctx)

    def delete_bucket(self, bucket_id: str, ctx: Optional[CallContext] = None,
                      auth: Optional[AuthToken] = None) -> Bucket:
        auth = self._require_auth(auth)
        return self._call("b2_delete_bucket", {
            "accountId": auth.account_id,
            "bucketId": bucket_id,
        }, Bucket, auth, ctx)

    def list_buckets(self, bucket_id: Optional[str] = None, bucket_name: Optional[str] = None,
                     bucket_types: Optional[List[str]] = None,
                     ctx: Optional[CallContext] = None,
                     auth: Optional[AuthToken] = None) -> ListBucketsResponse:
        auth = self._require_auth(auth)
        return self._call("b2_list_buckets", {
            "accountId": auth.account_id,
            "bucketId": bucket_id,
            "bucketName": bucket_name,
            "bucketTypes": [_enum_value(t) for t in bucket_types] if bucket_types else None,
        }, ListBucketsResponse, auth, ctx)

    def update_bucket(self, bucket_id: str, bucket_type: Optional[str] = None,
                      bucket_info: Optional[Dict[str, Any]] = None,
                      cors_rules: Optional[List[Dict[str, Any]]] = None,
                      lifecycle_rules: Optional[List[Dict[str, Any]]] = None,
                      if_revision_is: Optional[int] = None,
                      ctx: Optional[CallContext] = None,
                      auth: Optional[AuthToken] = None) -> Bucket:
        auth = self._require_auth(auth)
        return self._call("b2_update_bucket", {
            "accountId": auth.account_id,
            "bucketId": bucket_id,
            "bucketType": _enum_value(bucket_type) if bucket_type else None,
            "bucketInfo": bucket_info,
            "corsRules": cors_rules,
            "lifecycleRules": lifecycle_rules,
            "ifRevisionIs": if_revision_is,
        }, Bucket, auth, ctx)

    # -- keys -----------------------------------------------------------

    def create_key(self, key_name: str, capabilities: List[str],
                   valid_duration_seconds: Optional[int] = None,
                   bucket_id: Optional[str] = None, name_prefix: Optional[str] = None,
                   ctx: Optional[CallContext] = None,
                   auth: Optional[AuthToken] = None) -> Key:
        auth = self._require_auth(auth)
        return self._call("b2_create_key", {
            "accountId": auth.account_id,
            "keyName": key_name,
            "capabilities": [_enum_value(c) for c in capabilities],
            "validDurationInSeconds": valid_duration_seconds,
            "bucketId": bucket_id,
            "namePrefix": name_prefix,
        }, Key, auth, ctx)

    def delete_key(self, application_key_id: str, ctx: Optional[CallContext] = None,
                   auth: Optional[AuthToken] = None) -> Key:
        return self._call("b2_delete_key", {
            "applicationKeyId": application_key_id,
        }, Key, self._require_auth(auth), ctx)

    def list_keys(self, max_key_count: Optional[int] = None,
                  start_application_key_id: Optional[str] = None,
                  ctx: Optional[CallContext] = None,
                  auth: Optional[AuthToken] = None) -> ListKeysResponse:
        auth = self._require_auth(auth)
        return self._call("b2_list_keys", {
            "accountId": auth.account_id,
            "maxKeyCount": max_key_count,
            "startApplicationKeyId": start_application_key_id,
        }, ListKeysResponse, auth, ctx)

    # -- files ----------------------------------------------------------

    def get_file_info(self, file_id: str, ctx: Optional[CallContext] = None,
                      auth: Optional[AuthToken] = None) -> FileVersion:
        return self._call("b2_get_file_info", {"fileId": file_id},
                          FileVersion, self._require_auth(auth), ctx)

    def delete_file_version(self, file_id: str, file_name: str,
                            ctx: Optional[CallContext] = None,
                            auth: Optional[AuthToken] = None) -> DeleteFileResponse:
        return self._call("b2_delete_file_version", {
            "fileId": file_id,
            "fileName": file_name,
        }, DeleteFileResponse, self._require_auth(auth), ctx)

    def hide_file(self, bucket_id: str, file_name: str,
                  ctx: Optional[CallContext] = None,
                  auth: Optional[AuthToken] = None) -> FileVersion:
        return self._call("b2_hide_file", {
            "bucketId": bucket_id,
            "fileName": file_name,
        }, FileVersion, self._require_auth(auth), ctx)

    def copy_file(self, source_file_id: str, file_name: str,
                  destination_bucket_id: Optional[str] = None, range: Optional[str] = None,
                  metadata_directive: Optional[str] = None, content_type: Optional[str] = None,
                  file_info: Optional[Dict[str, str]] = None,
                  ctx: Optional[CallContext] = None,
                  auth: Optional[AuthToken] = None) -> FileVersion:
        return self._call("b2_copy_file", {
            "sourceFileId": source_file_id,
            "fileName": file_name,
            "destinationBucketId": destination_bucket_id,
            "range": range,
            "metadataDirective": _enum_value(metadata_directive) if metadata_directive else None,
            "contentType": content_type,
            "fileInfo": file_info,
        }, FileVersion, self._require_auth(auth), ctx)

    def list_file_names(self, bucket_id: str, start_file_name: Optional[str] = None,
                        max_file_count: Optional[int] = None, prefix: Optional[str] = None,
                        delimiter: Optional[str] = None,
                        ctx: Optional[CallContext] = None,
                        auth: Optional[AuthToken] = None) -> ListFileNamesResponse:
        return self._call("b2_list_file_names", {
            "bucketId": bucket_id,
            "startFileName": start_file_name,
            "maxFileCount": max_file_count,
            "prefix": prefix,
            "delimiter": delimiter,
        }, ListFileNamesResponse, self._require_auth(auth), ctx)

    def list_file_versions(self, bucket_id: str, start_file_name: Optional[str] = None,
                           start_file_id: Optional[str] = None,
                           max_file_count: Optional[int] = None, prefix: Optional[str] = None,
                           delimiter: Optional[str] = None,
                           ctx: Optional[CallContext] = None,
                           auth: Optional[AuthToken] = None) -> ListFileVersionsResponse:
        return self._call("b2_list_file_versions", {
            "bucketId": bucket_id,
            "startFileName": start_file_name,
            "startFileId": start_file_id,
            "maxFileCount": max_file_count,
            "prefix": prefix,
            "delimiter": delimiter,
        }, ListFileVersionsResponse, self._require_auth(auth), ctx)

    def get_download_authorization(self, bucket_id: str, file_name_prefix: str,
                                   valid_duration_seconds: int,
                                   content_disposition: Optional[str] = None,
                                   ctx: Optional[CallContext] = None,
                                   auth: Optional[AuthToken] = None) -> DownloadAuthorization:
        return self._call("b2_get_download_authorization", {
            "bucketId": bucket_id,
            "fileNamePrefix": file_name_prefix,
            "validDurationInSeconds": valid_duration_seconds,
            "b2ContentDisposition": content_disposition,
        }, DownloadAuthorization, self._require_auth(auth), ctx)

    # -- downloads ------------------------------------------------------

    def _download(self, url: str, opt: Optional[DownloadFileOptions], params: Dict[str, str],
                  auth: AuthToken, ctx: Optional[CallContext]) -> requests.Response:
        opt = opt or DownloadFileOptions()
        headers = self._headers(opt.authorization or auth.authorization_token)
        if opt.range:
            headers["Range"] = opt.range
        params.update(_compact({
            "b2ContentDisposition": opt.content_disposition,
            "b2ContentLanguage": opt.content_language,
            "b2Expires": opt.expires,
            "b2CacheControl": opt.cache_control,
            "b2ContentEncoding": opt.content_encoding,
            "b2ContentType": opt.content_type,
        }))
        return self._send("GET", url, ctx, stream=True, headers=headers, params=params)

    def download_file_by_id(self, file_id: str, opt: Optional[DownloadFileOptions] = None,
                            ctx: Optional[CallContext] = None,
                            auth: Optional[AuthToken] = None) -> requests.Response:
        """Start a download; the caller reads and closes the streamed response."""
        auth = self._require_auth(auth)
        url = f"{auth.download_url}{API_PREFIX}/b2_download_file_by_id"
        return self._download(url, opt, {"fileId": file_id}, auth, ctx)

    def download_file_by_name(self, bucket_name: str, file_name: str,
                              opt: Optional[DownloadFileOptions] = None,
                              ctx: Optional[CallContext] = None,
                              auth: Optional[AuthToken] = None) -> requests.Response:
        """Start a download; the caller reads and closes the streamed response."""
        auth = self._require_auth(auth)
        url = f"{auth.download_url}/file/{quote(bucket_name)}/{quote(file_name, safe='/')}"
        return self._download(url, opt, {}, auth, ctx)

    # -- uploads --------------------------------------------------------

    def get_upload_url(self, bucket_id: str, ctx: Optional[CallContext] = None,
                       auth: Optional[AuthToken] = None) -> UploadURL:
        return self._call("b2_get_upload_url", {"bucketId": bucket_id},
                          UploadURL, self._require_auth(auth), ctx)

    def get_upload_part_url(self, file_id: str, ctx: Optional[CallContext] = None,
                            auth: Optional[AuthToken] = None) -> UploadURL:
        return self._call("b2_get_upload_part_url", {"fileId": file_id},
                          UploadURL, self._require_auth(auth), ctx)

    def _prepare_body(self, body: BinaryIO, length: Optional[int],
                      content_sha1: Optional[str],
                      headers: Dict[str, str]) -> Tuple[Any, Optional[BinaryIO]]:
        """Set the length and checksum headers and wrap the body for sending.

        Returns:
            The request body, and a stream the caller must close afterwards
            if one was created here
        """
        owned = None
        if length is None or length < 0:
            body, length = read_length(self.temp_storage, body)
            owned = body

        if not content_sha1 or content_sha1 == SHA1_AT_END:
            body = HashedPostfixedReader(body)
            length += body.postfix_length
            headers["X-Bz-Content-Sha1"] = SHA1_AT_END
        else:
            headers["X-Bz-Content-Sha1"] = content_sha1

        headers["Content-Length"] = str(length)
        return (SizedBody(body, length) if length else b""), owned

    def upload_file(self, upload_url: UploadURL, opt: UploadFileOptions,
                    ctx: Optional[CallContext] = None) -> FileVersion:
        """Upload a whole file to a URL from get_upload_url."""
        headers = self._headers(upload_url.authorization_token)
        headers["X-Bz-File-Name"] = quote(opt.file_name, safe="/")
        headers["Content-Type"] = opt.content_type or CONTENT_TYPE_AUTO
        if opt.src_last_modified is not None:
            headers["X-Bz-Info-src_last_modified_millis"] = millis(opt.src_last_modified)
        info = {
            "X-Bz-Info-b2-content-disposition": opt.content_disposition,
            "X-Bz-Info-b2-content-language": opt.content_language,
            "X-Bz-Info-b2-expires": opt.expires,
            "X-Bz-Info-b2-cache-control": opt.cache_control,
            "X-Bz-Info-b2-content-encoding": opt.content_encoding,
            "X-Bz-Info-b2-content-type": opt.download_content_type,
        }
        headers.update(_compact(info))
        headers.update(opt.extra_headers)

        data, owned = self._prepare_body(opt.body, opt.content_length, opt.content_sha1, headers)
        try:
            res = self._send("POST", upload_url.upload_url, ctx, headers=headers, data=data)
        finally:
            if owned is not None:
                owned.close()
        return _parse(FileVersion, self._json(res))

    def upload_part(self, upload_url: UploadURL, opt: UploadPartOptions,
                    ctx: Optional[CallContext] = None) -> FilePart:
        """Upload one part of a large file to a URL from get_upload_part_url."""
        headers = self._headers(upload_url.authorization_token)
        headers["X-Bz-Part-Number"] = str(opt.part_number)
        data, owned = self._prepare_body(opt.body, opt.content_length, opt.content_sha1, headers)
        try:
            res = self._send("POST", upload_url.upload_url, ctx, headers=headers, data=data)
        finally:
            if owned is not None:
                owned.close()
        return _parse(FilePart, self._json(res))

    # -- large files ----------------------------------------------------

    def start_large_file(self, bucket_id: str, file_name: str,
                         content_type: Optional[str] = None,
                         file_info: Optional[Dict[str, str]] = None,
                         ctx: Optional[CallContext] = None,
                         auth: Optional[AuthToken] = None) -> FileVersion:
        return self._call("b2_start_large_file", {
            "bucketId": bucket_id,
            "fileName": file_name,
            "contentType": content_type or CONTENT_TYPE_AUTO,
            "fileInfo": file_info,
        }, FileVersion, self._require_auth(auth), ctx)

    def finish_large_file(self, file_id: str, part_sha1s: List[str],
                          ctx: Optional[CallContext] = None,
                          auth: Optional[AuthToken] = None) -> FileVersion:
        return self._call("b2_finish_large_file", {
            "fileId": file_id,
            "partSha1Array": list(part_sha1s),
        }, FileVersion, self._require_auth(auth), ctx)

    def cancel_large_file(self, file_id: str, ctx: Optional[CallContext] = None,
                          auth: Optional[AuthToken] = None) -> CancelLargeFileResponse:
        return self._call("b2_cancel_large_file", {
            "fileId": file_id,
        }, CancelLargeFileResponse, self._require_auth(auth), ctx)

    def copy_part(self, source_file_id: str, large_file_id: str, part_number: int,
                  range: Optional[str] = None, ctx: Optional[CallContext] = None,
                  auth: Optional[AuthToken] = None) -> FilePart:
        return self._call("b2_copy_part", {
            "sourceFileId": source_file_id,
            "largeFileId": large_file_id,
            "partNumber": part_number,
            "range": range,
        }, FilePart, self._require_auth(auth), ctx)

    def list_parts(self, file_id: str, start_part_number: Optional[int] = None,
                   max_part_count: Optional[int] = None,
                   ctx: Optional[CallContext] = None,
                   auth: Optional[AuthToken] = None) -> ListPartsResponse:
        return self._call("b2_list_parts", {
            "fileId": file_id,
            "startPartNumber": start_part_number,
            "maxPartCount": max_part_count,
        }, ListPartsResponse, self._require_auth(auth), ctx)

    def list_unfinished_large_files(self, bucket_id: str, name_prefix: Optional[str] = None,
                                    start_file_id: Optional[str] = None,
                                    max_file_count: Optional[int] = None,
                                    ctx: Optional[CallContext] = None,
                                    auth: Optional[AuthToken] = None) -> ListUnfinishedLargeFilesResponse:
        return self._call("b2_list_unfinished_large_files", {
            "bucketId": bucket_id,
            "namePrefix": name_prefix,
            "startFileId": start_file_id,
            "maxFileCount": max_file_count,
        }, ListUnfinishedLargeFilesResponse, self._require_auth(auth), ctx)
