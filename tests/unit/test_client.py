"""Unit tests for the one-shot B2 client."""
import io
import unittest
from unittest.mock import Mock

import requests

from b2client.auth_cache import AuthTokenCache
from b2client.client import Client
from b2client.context import CallContext
from b2client.errors import (
    CancellationRequested,
    ErrorResponse,
    MissingAuthorization,
    NetworkTimeout,
    TransportError,
    UnexpectedEOF,
)
from b2client.models import AuthToken, DownloadFileOptions, UploadFileOptions, UploadPartOptions, UploadURL

HELLO_SHA1 = "2aae6c35c94fcfb415dbe95f408b9ce91ee846ed"

AUTH_RESPONSE = {
    "accountId": "account",
    "authorizationToken": "token-1",
    "apiUrl": "https://api000.backblazeb2.com",
    "downloadUrl": "https://f000.backblazeb2.com",
    "recommendedPartSize": 100000000,
    "absoluteMinimumPartSize": 5000000,
    "allowed": {"capabilities": ["listBuckets", "writeFiles"], "bucketId": None},
}


def make_response(status=200, body=None, headers=None, text=""):
    res = Mock()
    res.status_code = status
    res.headers = headers or {}
    res.text = text
    res.reason = "Reason"
    if body is None:
        res.json.side_effect = ValueError("no json")
    else:
        res.json.return_value = body
    return res


class TestClient(unittest.TestCase):
    """Test cases for Client."""

    def setUp(self):
        """Set up test environment."""
        self.session = Mock(spec=requests.Session)
        self.cache = AuthTokenCache(AuthToken.from_dict(AUTH_RESPONSE))
        self.client = Client(auth_cache=self.cache, session=self.session, user_agent="test-agent")
        self.upload_url = UploadURL("https://pod-000.backblaze.com/b2api/v2/b2_upload_file/x", "upload-token")

    def test_authorize_fills_cache(self):
        """Test authorize calls b2_authorize_account and caches the token."""
        client = Client(session=self.session)
        self.session.request.return_value = make_response(body=AUTH_RESPONSE)

        token = client.authorize("key-id", "app-key")

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://api.backblazeb2.com/b2api/v2/b2_authorize_account"))
        self.assertEqual(kwargs["auth"], ("key-id", "app-key"))
        self.assertEqual(token.authorization_token, "token-1")
        self.assertEqual(token.allowed.capabilities, ("listBuckets", "writeFiles"))
        self.assertEqual(client.last_auth(), token)

    def test_call_uses_cached_token(self):
        """Test account calls go to the cached api url with the bearer token."""
        self.session.request.return_value = make_response(body={"fileId": "f1", "fileName": "a.txt"})

        info = self.client.get_file_info("f1")

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "https://api000.backblazeb2.com/b2api/v2/b2_get_file_info"))
        self.assertEqual(kwargs["headers"]["Authorization"], "token-1")
        self.assertEqual(kwargs["headers"]["User-Agent"], "test-agent")
        self.assertEqual(kwargs["json"], {"fileId": "f1"})
        self.assertEqual(info.file_name, "a.txt")

    def test_unset_fields_are_omitted(self):
        """Test None-valued payload fields are not sent."""
        self.session.request.return_value = make_response(body={"buckets": []})

        self.client.list_buckets(bucket_name="photos")

        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["json"], {"accountId": "account", "bucketName": "photos"})

    def test_missing_authorization(self):
        """Test account calls without a cached token fail before sending."""
        client = Client(session=self.session)
        with self.assertRaises(MissingAuthorization):
            client.get_file_info("f1")
        self.session.request.assert_not_called()

    def test_done_context_is_not_sent(self):
        """Test a cancelled context stops the request before it is sent."""
        ctx = CallContext()
        ctx.cancel()
        with self.assertRaises(CancellationRequested):
            self.client.get_file_info("f1", ctx=ctx)
        self.session.request.assert_not_called()

    def test_error_response(self):
        """Test non-200 responses raise ErrorResponse and are closed."""
        res = make_response(401, {"status": 401, "code": "expired_auth_token", "message": "expired"})
        self.session.request.return_value = res

        with self.assertRaises(ErrorResponse) as cm:
            self.client.get_file_info("f1")

        self.assertTrue(cm.exception.is_expired_auth)
        self.assertEqual(str(cm.exception), "401: expired_auth_token - expired")
        res.close.assert_called_once()

    def test_retry_after_header(self):
        """Test the Retry-After header is attached to the error."""
        self.session.request.return_value = make_response(
            429, {"status": 429, "code": "too_many_requests", "message": ""}, {"Retry-After": "7"}
        )
        with self.assertRaises(ErrorResponse) as cm:
            self.client.list_buckets()
        self.assertEqual(cm.exception.retry_after, 7.0)

    def test_non_json_error_keeps_status(self):
        """Test an error body that is not JSON still reports the HTTP status."""
        self.session.request.return_value = make_response(502, text="Bad Gateway")
        with self.assertRaises(ErrorResponse) as cm:
            self.client.list_buckets()
        self.assertEqual(cm.exception.status, 502)
        self.assertTrue(cm.exception.is_server_error)

    def test_transport_errors_are_translated(self):
        """Test requests exceptions map onto the client's error types."""
        cases = [
            (requests.exceptions.ReadTimeout("read timed out"), NetworkTimeout),
            (requests.exceptions.ConnectTimeout("connect timed out"), NetworkTimeout),
            (requests.exceptions.ConnectionError("reset by peer"), UnexpectedEOF),
            (requests.exceptions.ChunkedEncodingError("truncated"), UnexpectedEOF),
            (requests.exceptions.InvalidURL("bad url"), TransportError),
        ]
        for exc, expected in cases:
            self.session.request.side_effect = exc
            with self.assertRaises(expected) as cm:
                self.client.get_file_info("f1")
            self.assertIs(cm.exception.__cause__, exc)

    def test_upload_file_hashes_at_end(self):
        """Test uploads without a digest stream the SHA-1 after the payload."""
        self.session.request.return_value = make_response(body={"fileId": "f1", "fileName": "dir/hello world.txt"})
        opt = UploadFileOptions("dir/hello world.txt", io.BytesIO(b"hello world"), content_length=11,
                                cache_control="max-age=60")

        version = self.client.upload_file(self.upload_url, opt)

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", self.upload_url.upload_url))
        headers = kwargs["headers"]
        self.assertEqual(headers["Authorization"], "upload-token")
        self.assertEqual(headers["X-Bz-File-Name"], "dir/hello%20world.txt")
        self.assertEqual(headers["Content-Type"], "b2/x-auto")
        self.assertEqual(headers["Content-Length"], "51")
        self.assertEqual(headers["X-Bz-Content-Sha1"], "hex_digits_at_end")
        self.assertEqual(headers["X-Bz-Info-b2-cache-control"], "max-age=60")
        self.assertEqual(kwargs["data"].len, 51)
        self.assertEqual(kwargs["data"].read(), b"hello world" + HELLO_SHA1.encode())
        self.assertEqual(version.file_id, "f1")

    def test_upload_file_with_known_digest(self):
        """Test a caller-supplied SHA-1 is sent as a header."""
        self.session.request.return_value = make_response(body={"fileId": "f1", "fileName": "a"})
        opt = UploadFileOptions("a", io.BytesIO(b"hello world"), content_length=11, content_sha1=HELLO_SHA1)

        self.client.upload_file(self.upload_url, opt)

        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["headers"]["X-Bz-Content-Sha1"], HELLO_SHA1)
        self.assertEqual(kwargs["headers"]["Content-Length"], "11")
        self.assertEqual(kwargs["data"].read(), b"hello world")

    def test_upload_file_unknown_length(self):
        """Test a body of unknown length is measured through temp storage."""
        self.session.request.return_value = make_response(body={"fileId": "f1", "fileName": "a"})
        body = io.BytesIO(b"hello world")
        opt = UploadFileOptions("a", body)

        self.client.upload_file(self.upload_url, opt)

        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["headers"]["Content-Length"], "51")
        self.assertTrue(body.closed)

    def test_upload_part(self):
        """Test part uploads carry the part number."""
        self.session.request.return_value = make_response(
            body={"fileId": "f1", "partNumber": 2, "contentLength": 11, "contentSha1": HELLO_SHA1}
        )
        opt = UploadPartOptions(2, io.BytesIO(b"hello world"), 11, HELLO_SHA1)

        part = self.client.upload_part(self.upload_url, opt)

        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["headers"]["X-Bz-Part-Number"], "2")
        self.assertEqual(part.part_number, 2)

    def test_test_mode_header(self):
        """Test the failure-injection header is sent when configured."""
        client = Client(auth_cache=self.cache, session=self.session, test_mode="fail_some_uploads")
        self.session.request.return_value = make_response(body={"buckets": []})

        client.list_buckets()

        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["headers"]["X-Bz-Test-Mode"], "fail_some_uploads")

    def test_download_by_name(self):
        """Test downloads stream from the download url."""
        res = make_response(body={})
        self.session.request.return_value = res

        result = self.client.download_file_by_name("photos", "dir/cat 1.jpg")

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://f000.backblazeb2.com/file/photos/dir/cat%201.jpg"))
        self.assertTrue(kwargs["stream"])
        self.assertIs(result, res)

    def test_download_byte_range(self):
        """Test ranged download options send an inclusive Range header."""
        self.session.request.return_value = make_response(body={})

        self.client.download_file_by_id("f1", DownloadFileOptions.for_bytes(0, 100))

        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["headers"]["Range"], "bytes=0-99")

    def test_invalid_byte_range(self):
        """Test empty or negative byte ranges are rejected."""
        for start, end in [(10, 10), (10, 5), (-1, 5)]:
            with self.assertRaises(ValueError):
                DownloadFileOptions.for_bytes(start, end)

    def test_explicit_auth_overrides_cache(self):
        """Test a token passed to a call is used instead of the cached one."""
        self.session.request.return_value = make_response(body={"buckets": []})
        token = AuthToken("account-2", "token-2", "https://api002.backblazeb2.com", "https://f002.backblazeb2.com")

        self.client.list_buckets(auth=token)

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "https://api002.backblazeb2.com/b2api/v2/b2_list_buckets"))
        self.assertEqual(kwargs["headers"]["Authorization"], "token-2")
        self.assertEqual(kwargs["json"], {"accountId": "account-2"})

    def test_explicit_auth_without_cache(self):
        """Test a call given a token does not need a cached one."""
        client = Client(session=self.session)
        self.session.request.return_value = make_response(body={"fileId": "f1", "fileName": "a.txt"})

        info = client.get_file_info("f1", auth=self.cache.get())

        self.assertEqual(info.file_id, "f1")

    def test_malformed_authorize_response(self):
        """Test an authorize reply missing fields raises TransportError and caches nothing."""
        client = Client(session=self.session)
        body = dict(AUTH_RESPONSE)
        del body["accountId"]
        self.session.request.return_value = make_response(body=body)

        with self.assertRaises(TransportError) as cm:
            client.authorize("key-id", "app-key")

        self.assertIsInstance(cm.exception.__cause__, KeyError)
        self.assertIsNone(client.last_auth())

    def test_malformed_call_response(self):
        """Test a reply that does not match the model raises TransportError."""
        self.session.request.return_value = make_response(body={"bucketId": "bucket"})

        with self.assertRaises(TransportError):
            self.client.get_upload_url("bucket")


if __name__ == "__main__":
    unittest.main()
