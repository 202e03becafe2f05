"""Report export schemas."""

from pydantic import BaseModel


class ExportResponse(BaseModel):
    """Generated report; ``encoding`` is ``"base64"`` for binary spreadsheets."""

    format: str
    mimeType: str
    content: str
    filename: str
    encoding: str | None = None
