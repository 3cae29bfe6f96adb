from .constants import ERROR_BODY_EXCERPT_LENGTH


class TransferStatusError(Exception):
    """
    Raised when an HTTP response returns a non-success status code.

    Attributes:
        status (int): The HTTP status code received.
        reason (str | None): Reason phrase sent by the server.
        body (str): Response body excerpt, truncated to ERROR_BODY_EXCERPT_LENGTH characters.
        url (str | None): Request URL.
        message (str): Human-readable error message.
    """

    def __init__(
        self,
        status: int,
        reason: str | None = None,
        body: str = "",
        url: str | None = None,
    ):
        self.status = status
        self.reason = reason
        self.url = url

        if len(body) > ERROR_BODY_EXCERPT_LENGTH:
            body = body[:ERROR_BODY_EXCERPT_LENGTH] + "..."
        self.body = body

        reason_str = f" {reason}" if reason else ""
        url_str = f", url={url}" if url else ""
        self.message = f"Unexpected HTTP status: {status}{reason_str}{url_str}\nbody={body!r}"

        super().__init__(self.message)
