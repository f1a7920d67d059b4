"""PDF rendering with reportlab."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

LOGGER = logging.getLogger(__name__)

MARGIN = 50


class DocumentError(RuntimeError):
    """Raised when a document cannot be written."""


class PdfRenderer:
    """Render plain text into a paginated A4 PDF."""

    async def render(
        self,
        content: str,
        output_path: Path,
        *,
        title: str | None = None,
        author: str | None = None,
    ) -> Path:
        """Write ``content`` to ``output_path`` on a worker thread."""
        return await asyncio.to_thread(
            self._render_blocking, content, Path(output_path), title, author
        )

    def _render_blocking(
        self, content: str, output_path: Path, title: str | None, author: str | None
    ) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        doc = SimpleDocTemplate(
            str(output_path),
            pagesize=A4,
            rightMargin=MARGIN,
            leftMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=MARGIN,
            title=title or "",
            author=author or "",
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "DocumentTitle",
            parent=styles["Heading1"],
            fontName="Helvetica-Bold",
            fontSize=20,
            alignment=TA_CENTER,
            spaceAfter=12,
        )
        body_style = styles["Normal"]
        line_height = body_style.leading

        story = []
        if title:
            story.append(Paragraph(escape(title), title_style))
            story.append(Spacer(1, line_height))
        for line in content.splitlines():
            if line.strip():
                story.append(Paragraph(escape(line), body_style))
            else:
                story.append(Spacer(1, line_height / 2))
        if not story:
            story.append(Spacer(1, line_height))

        try:
            doc.build(story)
        except (OSError, ValueError) as exc:
            raise DocumentError(f"Failed to render {output_path.name}: {exc}") from exc
        LOGGER.info("Rendered PDF %s", output_path)
        return output_path


__all__ = ["DocumentError", "PdfRenderer"]
