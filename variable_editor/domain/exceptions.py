"""Error taxonomy for template compositing and batch rendering."""

from typing import Optional


class VariableEditorError(Exception):
    """Base class for every error raised by the render pipeline."""


class DocumentLoadError(VariableEditorError):
    """A referenced document could not be fetched."""

    def __init__(self, reference: str, reason: str = ""):
        self.reference = reference
        self.reason = reason
        shown = reference if len(reference) <= 80 else reference[:77] + "..."
        message = f"Could not load document '{shown}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class MalformedDocumentError(VariableEditorError):
    """A document could not be parsed as SVG/XML."""

    def __init__(self, reference: str, reason: str = ""):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Document '{reference}' is not valid SVG/XML: {reason}")


class TemplateNotFoundError(VariableEditorError):
    """No template is stored under the requested project id."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"No template found for projectId '{project_id}'")


class RenderError(VariableEditorError):
    """
    Rasterizer failure.

    Attributes:
        url: Target URL that was being rendered
    """

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class NavigationError(RenderError):
    """The target page could not be loaded."""


class RenderTimeoutError(RenderError):
    """The ready marker did not appear before the timeout."""


class CaptureError(RenderError):
    """The screenshot could not be taken or decoded."""


class UploadError(VariableEditorError):
    """Writing raster output to the object store failed."""


class RowProcessingError(VariableEditorError):
    """
    Failure of one batch row.

    Attributes:
        row_index: Position of the row in the input
        row_id: Identifier taken from the row (or a positional fallback)
        stage: Pipeline stage that failed ("render" or "upload")
        cause: The underlying exception
    """

    def __init__(self, row_index: int, row_id: str, stage: str, cause: BaseException):
        self.row_index = row_index
        self.row_id = row_id
        self.stage = stage
        self.cause = cause
        super().__init__(
            f"Row {row_index} ({row_id}) failed during {stage}: {type(cause).__name__}: {cause}"
        )
