from .uploads import options_mapping, parse_options, read_upload, request_from_upload, upload_limit

__all__ = ["options_mapping", "parse_options", "read_upload", "request_from_upload", "upload_limit"]
