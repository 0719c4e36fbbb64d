"""
PDF export of resource listings (ReportLab).
"""

from abc import ABC, abstractmethod
from io import BytesIO
from typing import Generic, List, Sequence, TypeVar

import structlog
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from augmentations_api.models.augmentation import AugResponseModel

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class IPDFGenerationService(ABC, Generic[T]):
    """Renders a list of models as a PDF document."""

    @abstractmethod
    def generate(self, models: Sequence[T], title: str) -> bytes:
        ...


class AugmentationPDFGenerationService(IPDFGenerationService[AugResponseModel]):
    """One table row per augmentation."""

    columns = ("Id", "Name", "Description", "Type", "Activation", "Energy Consumption")

    def generate(self, models: Sequence[AugResponseModel], title: str) -> bytes:
        """
        Render augmentations as a landscape A4 table.

        Args:
            models: Augmentations to include
            title: Document and heading title

        Returns:
            PDF document bytes
        """
        styles = getSampleStyleSheet()
        cell = styles["BodyText"]

        rows: List[list] = [list(self.columns)]
        for model in models:
            rows.append([
                str(model.id),
                Paragraph(_escape(model.name), cell),
                Paragraph(_escape(model.description), cell),
                model.type or "",
                model.activation or "",
                model.energy_consumption or "",
            ])

        table = Table(
            rows,
            repeatRows=1,
            colWidths=[1.5 * cm, 5 * cm, 10 * cm, 3 * cm, 3 * cm, 4 * cm]
        )
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2b2b2b")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#f5c518")),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f0f0f0")]),
        ]))

        buffer = BytesIO()
        document = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            title=title,
            leftMargin=1 * cm,
            rightMargin=1 * cm,
            topMargin=1 * cm,
            bottomMargin=1 * cm,
        )
        document.build([Paragraph(_escape(title), styles["Title"]), Spacer(1, 0.5 * cm), table])

        pdf = buffer.getvalue()
        logger.info("pdf_generated", title=title, rows=len(models), size=len(pdf))
        return pdf


def _escape(text: str) -> str:
    # Paragraph parses a small XML markup language.
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
