class RelayError(Exception):
    """Failure that maps onto a JSON ``{"error": ...}`` response."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidImageError(RelayError):
    status_code = 400


class UpstreamError(RelayError):
    status_code = 500


class ResultParseError(RelayError):
    status_code = 500


NO_IMAGE = "No image provided"
INVALID_TYPE = "Invalid file type. Use JPG, PNG, or WebP"
UPLOAD_FAILED = "Failed to upload image"
SUBMIT_FAILED = "Failed to submit prediction"
RESULT_FAILED = "Failed to get prediction result"
PARSE_FAILED = "Could not parse prediction result"
INTERNAL_ERROR = "An error occurred during prediction"
