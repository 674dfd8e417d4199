"""Request and response models for the B2 API."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from .helpers import byte_range


@dataclass(frozen=True)
class Allowed:
    """Restrictions attached to the key used to authorize."""
    capabilities: Tuple[str, ...] = ()
    bucket_id: Optional[str] = None
    bucket_name: Optional[str] = None
    name_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Allowed":
        return cls(
            capabilities=tuple(data.get("capabilities") or ()),
            bucket_id=data.get("bucketId"),
            bucket_name=data.get("bucketName"),
            name_prefix=data.get("namePrefix"),
        )


@dataclass(frozen=True)
class AuthToken:
    """Result of b2_authorize_account."""
    account_id: str
    authorization_token: str
    api_url: str
    download_url: str
    allowed: Allowed = field(default_factory=Allowed)
    absolute_minimum_part_size: int = 0
    recommended_part_size: int = 0

    def __repr__(self):
        # keep the bearer token out of logs
        return (f"AuthToken(account_id={self.account_id!r}, api_url={self.api_url!r}, "
                f"download_url={self.download_url!r}, allowed={self.allowed!r})")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthToken":
        return cls(
            account_id=data["accountId"],
            authorization_token=data["authorizationToken"],
            api_url=data["apiUrl"],
            download_url=data["downloadUrl"],
            allowed=Allowed.from_dict(data.get("allowed") or {}),
            absolute_minimum_part_size=int(data.get("absoluteMinimumPartSize", 0)),
            recommended_part_size=int(data.get("recommendedPartSize", 0)),
        )


@dataclass
class Bucket:
    account_id: str
    bucket_id: str
    bucket_name: str
    bucket_type: str
    bucket_info: Dict[str, Any] = field(default_factory=dict)
    cors_rules: List[Dict[str, Any]] = field(default_factory=list)
    lifecycle_rules: List[Dict[str, Any]] = field(default_factory=list)
    revision: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bucket":
        return cls(
            account_id=data.get("accountId", ""),
            bucket_id=data["bucketId"],
            bucket_name=data.get("bucketName", ""),
            bucket_type=data.get("bucketType", ""),
            bucket_info=data.get("bucketInfo") or {},
            cors_rules=data.get("corsRules") or [],
            lifecycle_rules=data.get("lifecycleRules") or [],
            revision=int(data.get("revision", 0)),
        )


@dataclass
class FileVersion:
    """Metadata of a single file version."""
    file_id: str
    file_name: str
    account_id: str = ""
    bucket_id: str = ""
    action: str = ""
    content_length: int = 0
    content_sha1: Optional[str] = None
    content_md5: Optional[str] = None
    content_type: Optional[str] = None
    file_info: Dict[str, str] = field(default_factory=dict)
    upload_timestamp: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileVersion":
        return cls(
            file_id=data.get("fileId") or "",
            file_name=data.get("fileName", ""),
            account_id=data.get("accountId", ""),
            bucket_id=data.get("bucketId", ""),
            action=data.get("action", ""),
            content_length=int(data.get("contentLength") or 0),
            content_sha1=data.get("contentSha1"),
            content_md5=data.get("contentMd5"),
            content_type=data.get("contentType"),
            file_info=data.get("fileInfo") or {},
            upload_timestamp=int(data.get("uploadTimestamp") or 0),
        )


@dataclass
class FilePart:
    file_id: str
    part_number: int
    content_length: int
    content_sha1: str
    content_md5: Optional[str] = None
    upload_timestamp: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilePart":
        return cls(
            file_id=data["fileId"],
            part_number=int(data["partNumber"]),
            content_length=int(data.get("contentLength") or 0),
            content_sha1=data.get("contentSha1", ""),
            content_md5=data.get("contentMd5"),
            upload_timestamp=int(data.get("uploadTimestamp") or 0),
        )


@dataclass
class Key:
    key_name: str
    application_key_id: str
    capabilities: List[str]
    account_id: str = ""
    application_key: Optional[str] = None  # only returned by create_key
    expiration_timestamp: Optional[int] = None
    bucket_id: Optional[str] = None
    name_prefix: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Key":
        return cls(
            key_name=data.get("keyName", ""),
            application_key_id=data["applicationKeyId"],
            capabilities=list(data.get("capabilities") or []),
            account_id=data.get("accountId", ""),
            application_key=data.get("applicationKey"),
            expiration_timestamp=data.get("expirationTimestamp"),
            bucket_id=data.get("bucketId"),
            name_prefix=data.get("namePrefix"),
        )


@dataclass(frozen=True)
class UploadURL:
    """Short-lived endpoint and token for a single upload stream."""
    upload_url: str
    authorization_token: str
    bucket_id: Optional[str] = None
    file_id: Optional[str] = None  # set for part uploads

    def __repr__(self):
        return f"UploadURL(upload_url={self.upload_url!r}, bucket_id={self.bucket_id!r}, file_id={self.file_id!r})"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadURL":
        return cls(
            upload_url=data["uploadUrl"],
            authorization_token=data["authorizationToken"],
            bucket_id=data.get("bucketId"),
            file_id=data.get("fileId"),
        )


@dataclass
class DeleteFileResponse:
    file_id: str
    file_name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeleteFileResponse":
        return cls(file_id=data["fileId"], file_name=data["fileName"])


@dataclass
class CancelLargeFileResponse:
    file_id: str
    file_name: str
    account_id: str = ""
    bucket_id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CancelLargeFileResponse":
        return cls(
            file_id=data["fileId"],
            file_name=data.get("fileName", ""),
            account_id=data.get("accountId", ""),
            bucket_id=data.get("bucketId", ""),
        )


@dataclass
class DownloadAuthorization:
    bucket_id: str
    file_name_prefix: str
    authorization_token: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadAuthorization":
        return cls(
            bucket_id=data["bucketId"],
            file_name_prefix=data.get("fileNamePrefix", ""),
            authorization_token=data["authorizationToken"],
        )


@dataclass
class ListBucketsResponse:
    buckets: List[Bucket]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListBucketsResponse":
        return cls(buckets=[Bucket.from_dict(b) for b in data.get("buckets") or []])


@dataclass
class ListFileNamesResponse:
    files: List[FileVersion]
    next_file_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListFileNamesResponse":
        return cls(
            files=[FileVersion.from_dict(f) for f in data.get("files") or []],
            next_file_name=data.get("nextFileName"),
        )


@dataclass
class ListFileVersionsResponse:
    files: List[FileVersion]
    next_file_name: Optional[str] = None
    next_file_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListFileVersionsResponse":
        return cls(
            files=[FileVersion.from_dict(f) for f in data.get("files") or []],
            next_file_name=data.get("nextFileName"),
            next_file_id=data.get("nextFileId"),
        )


@dataclass
class ListUnfinishedLargeFilesResponse:
    files: List[FileVersion]
    next_file_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListUnfinishedLargeFilesResponse":
        return cls(
            files=[FileVersion.from_dict(f) for f in data.get("files") or []],
            next_file_id=data.get("nextFileId"),
        )


@dataclass
class ListPartsResponse:
    parts: List[FilePart]
    next_part_number: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListPartsResponse":
        return cls(
            parts=[FilePart.from_dict(p) for p in data.get("parts") or []],
            next_part_number=data.get("nextPartNumber"),
        )


@dataclass
class ListKeysResponse:
    keys: List[Key]
    next_application_key_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListKeysResponse":
        return cls(
            keys=[Key.from_dict(k) for k in data.get("keys") or []],
            next_application_key_id=data.get("nextApplicationKeyId"),
        )


@dataclass
class UploadFileOptions:
    """Options for b2_upload_file.

    ``content_length`` of None means unknown: the body is stored through the
    client's temp storage to measure it. ``content_sha1`` of None (or
    ``hex_digits_at_end``) hashes the body while it streams and appends the
    digest.
    """
    file_name: str
    body: BinaryIO
    content_length: Optional[int] = None
    content_type: Optional[str] = None  # defaults to b2/x-auto
    content_sha1: Optional[str] = None
    src_last_modified: Optional[datetime] = None
    content_disposition: Optional[str] = None
    content_language: Optional[str] = None
    expires: Optional[str] = None
    cache_control: Optional[str] = None
    content_encoding: Optional[str] = None
    download_content_type: Optional[str] = None
    # extra headers, must be prefixed with X-Bz-Info-
    extra_headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class UploadPartOptions:
    """Options for b2_upload_part."""
    part_number: int
    body: BinaryIO
    content_length: Optional[int] = None
    content_sha1: Optional[str] = None


@dataclass
class DownloadFileOptions:
    """Options shared by the two download endpoints."""
    range: Optional[str] = None  # Range header value, e.g. "bytes=0-99"
    authorization: Optional[str] = None  # download authorization token, overrides the account token
    content_disposition: Optional[str] = None
    content_language: Optional[str] = None
    expires: Optional[str] = None
    cache_control: Optional[str] = None
    content_encoding: Optional[str] = None
    content_type: Optional[str] = None

    @classmethod
    def for_bytes(cls, start: int, end: int, **kwargs) -> "DownloadFileOptions":
        """Options that download bytes [start, end) of the file."""
        if start < 0 or end <= start:
            raise ValueError(f"Invalid byte range [{start}, {end})")
        return cls(range=byte_range(start, end), **kwargs)
