"""
Exceptions raised by the form overlay pipeline.

Only document-fatal and upstream problems are raised. Field-local problems
(a page index out of range, one layer that fails to draw) are logged and
skipped by the callers, and an unresolved field is simply dropped.
"""


class FormOverlayError(Exception):
    """Base exception for all form overlay errors."""

    user_message = "⚠️ Error: The system failed to securely sign and map this document."

    def __init__(self, message: str = "", user_message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if user_message:
            self.user_message = user_message

    @property
    def default_message(self) -> str:
        return "An unknown form overlay error occurred."


class DocumentLoadError(FormOverlayError):
    """Raised when the source PDF cannot be fetched or parsed."""

    user_message = "⚠️ Error: The PDF could not be opened. It may be corrupt or not a PDF."

    @property
    def default_message(self) -> str:
        return "Invalid or corrupted PDF file."


class TemplateNotFoundError(FormOverlayError):
    """Raised when no template matches the document or the id is unknown."""

    user_message = "No template mapping found for this PDF"

    @property
    def default_message(self) -> str:
        return "No template found."


class TemplateUnreadableError(FormOverlayError):
    """Raised when a template exists but its mapping cannot be loaded."""

    user_message = "Template detected but mapping could not be loaded"

    @property
    def default_message(self) -> str:
        return "Template mapping is unreadable."


class UpstreamServiceError(FormOverlayError):
    """Raised when the OCR service or a store is unreachable."""

    user_message = "⚠️ AWS Connection Error: Failed to analyze document layout."

    @property
    def default_message(self) -> str:
        return "Upstream service unavailable."


class VaultError(FormOverlayError):
    """Raised when a filled document cannot be stored or retrieved."""

    user_message = "⚠️ Error: Failed to store the document in the secure vault."

    @property
    def default_message(self) -> str:
        return "Vault operation failed."


class DocumentNotFoundError(VaultError):
    """Raised for an unknown or expired vault document or download link."""

    user_message = "Document not found"

    @property
    def default_message(self) -> str:
        return "Document not found or expired."
