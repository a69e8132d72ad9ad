"""
Custom exceptions for domain-specific errors
"""


class YouTubeExtractionError(Exception):
    """Base class for YouTube extraction errors"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidVideoURLError(YouTubeExtractionError):
    """Raised when a URL cannot be resolved to a YouTube video ID"""

    def __init__(self, url: str, message: str = "Invalid YouTube URL"):
        self.url = url
        super().__init__(message)


class VideoValidationError(YouTubeExtractionError):
    """
    Raised by pre-flight checks that reject a request before any job
    is created (metadata unavailable, video too long, bad recipe index).
    """


class JobNotFoundError(YouTubeExtractionError):
    """
    Raised when a job does not exist or is not owned by the caller.
    Both cases are reported identically.
    """

    def __init__(self, job_id: str, message: str = "Job not found"):
        self.job_id = job_id
        super().__init__(message)


class InvalidJobStateError(YouTubeExtractionError):
    """Raised when an operation is not allowed in the job's current state"""


class MetadataFetchError(YouTubeExtractionError):
    """Raised when yt-dlp cannot return metadata for a video"""


class ProcessError(YouTubeExtractionError):
    """
    Raised when an external media tool fails.
    The tool's error output is attached to the message.
    """

    def __init__(self, tool: str, message: str, output: str = ""):
        self.tool = tool
        self.output = output
        detail = f"{tool} failed: {message}"
        if output:
            detail = f"{detail}: {output.strip()[-500:]}"
        super().__init__(detail)


class RecipeParseError(YouTubeExtractionError):
    """Raised when the synthesis response is not valid JSON"""

    def __init__(self, message: str = "Failed to parse extracted recipes"):
        super().__init__(message)


class NoRecipesExtractedError(YouTubeExtractionError):
    """Raised when synthesis produced no valid recipe"""

    def __init__(self, message: str = "No valid recipes could be extracted"):
        super().__init__(message)


class JobCancelledError(YouTubeExtractionError):
    """
    Raised inside a running pipeline when its job record was moved to a
    terminal state by someone else (cancellation).
    """

    def __init__(self, job_id: str, message: str = "Job was cancelled"):
        self.job_id = job_id
        super().__init__(message)
