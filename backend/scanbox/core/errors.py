from __future__ import annotations
import errno
from typing import Optional


class UploadError(Exception):
    """Base for every failure that is local to one upload request."""
    kind = "upload_error"
    status_code = 500

    def __init__(self, message: str, part_index: Optional[int] = None, part_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.part_index = part_index
        self.part_name = part_name


class ValidationError(UploadError):
    kind = "validation_error"
    status_code = 400


class UnsupportedMethodError(ValidationError):
    status_code = 405


class UnsupportedMediaTypeError(ValidationError):
    status_code = 415


class ParseError(UploadError):
    kind = "parse_error"
    status_code = 400


class PayloadTooLargeError(ParseError):
    status_code = 413


class WriteError(UploadError):
    kind = "write_error"

    @property
    def status_code(self) -> int:
        # 507 Insufficient Storage when the filesystem itself is full
        cause = self.__cause__
        if isinstance(cause, OSError) and cause.errno in (errno.ENOSPC, errno.EDQUOT):
            return 507
        return 500


class NameTakenError(WriteError):
    """Target path already exists; raised before any part byte is consumed."""


class ClientDisconnect(UploadError):
    kind = "client_disconnect"
    status_code = 400


class InternalError(UploadError):
    kind = "internal_error"
