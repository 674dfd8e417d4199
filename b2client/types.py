"""Common types, enums and constants for the B2 API."""
from enum import Enum

CLIENT_VERSION = "0.1.0"
DEFAULT_API_URL = "https://api.backblazeb2.com"
API_PREFIX = "/b2api/v2"

# see https://www.backblaze.com/b2/docs/content-types.html
CONTENT_TYPE_HIDE = "application/x-bz-hide-marker"
CONTENT_TYPE_AUTO = "b2/x-auto"
CONTENT_TYPE_TEXT = "text/plain"

SHA1_AT_END = "hex_digits_at_end"

# Error codes reported in the JSON body of non-200 responses
ERR_CODE_BAD_REQUEST = "bad_request"
ERR_CODE_UNAUTHORIZED = "unauthorized"
ERR_CODE_BAD_AUTH_TOKEN = "bad_auth_token"
ERR_CODE_EXPIRED_AUTH_TOKEN = "expired_auth_token"
ERR_CODE_DOWNLOAD_CAP_EXCEEDED = "download_cap_exceeded"
ERR_CODE_NOT_FOUND = "not_found"
ERR_CODE_RANGE_NOT_SATISFIABLE = "range_not_satisfiable"


class BucketType(str, Enum):
    """Visibility of a bucket."""
    PUBLIC = "allPublic"
    PRIVATE = "allPrivate"
    SNAPSHOT = "snapshot"
    ALL = "all"  # only valid as a ListBuckets filter


class Capability(str, Enum):
    """Capabilities that can be granted to an application key."""
    LIST_KEYS = "listKeys"
    WRITE_KEYS = "writeKeys"
    DELETE_KEYS = "deleteKeys"
    LIST_BUCKETS = "listBuckets"
    WRITE_BUCKETS = "writeBuckets"
    DELETE_BUCKETS = "deleteBuckets"
    LIST_FILES = "listFiles"
    READ_FILES = "readFiles"
    SHARE_FILES = "shareFiles"
    WRITE_FILES = "writeFiles"
    DELETE_FILES = "deleteFiles"


class FileAction(str, Enum):
    """State of a file version as reported by the listing endpoints."""
    START = "start"    # large file started, not finished or cancelled
    UPLOAD = "upload"  # a file was uploaded
    HIDE = "hide"      # hide marker, invisible to list_file_names
    FOLDER = "folder"  # virtual folder when listing with a delimiter


class MetadataDirective(str, Enum):
    """How copy_file treats the source file's metadata."""
    COPY = "COPY"
    REPLACE = "REPLACE"


class FailureMode(str, Enum):
    """Failure-injection modes understood by the B2 servers (X-Bz-Test-Mode)."""
    FAIL_SOME_UPLOADS = "fail_some_uploads"
    EXPIRE_SOME_TOKENS = "expire_some_account_authorization_tokens"
    FORCE_CAP_EXCEEDED = "force_cap_exceeded"
