"""PDF rendering of a resolved safety report with reportlab."""
import io
import logging
from xml.sax.saxutils import escape
import requests
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    Image,
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)
from shared.enums import Bucket
from shared.models import now
from shared.utils import (
    CorruptedImageError, decode_data_uri, fit_within, format_display_date, format_display_time,
    inspect_image, is_data_uri, to_data_uri,
)
from .image_cache import ImageCache
from .object_storage import public_object_url

logger = logging.getLogger(__name__)

IMAGE_UNAVAILABLE = 'Image not available'
CONTENT_WIDTH = 7.0 * inch
MAX_IMAGE_WIDTH = 6.5 * inch
MAX_IMAGE_HEIGHT = 3.5 * inch

BRAND_BLUE = colors.HexColor('#234CAD')
SECTION_BG = colors.HexColor('#F3F4F6')
GRID = colors.HexColor('#DDDDDD')

# value -> (background, text)
BADGE_COLORS = {
    'severe': ('#FEE2E2', '#991B1B'),
    'major': ('#FFEDD5', '#9A3412'),
    'moderate': ('#FEF9C3', '#854D0E'),
    'minor': ('#DCFCE7', '#166534'),
    'open': ('#DCFCE7', '#166534'),
    'closed': ('#FEE2E2', '#991B1B'),
}

_base = getSampleStyleSheet()

STYLE_TITLE = ParagraphStyle(
    'ReportTitle', parent=_base['Heading1'], fontSize=20, textColor=BRAND_BLUE,
    alignment=TA_CENTER, spaceAfter=2, fontName='Helvetica-Bold',
)
STYLE_SUBTITLE = ParagraphStyle(
    'ReportSubtitle', parent=_base['Normal'], fontSize=9, textColor=colors.gray,
    alignment=TA_CENTER, spaceAfter=12,
)
STYLE_SECTION = ParagraphStyle(
    'ReportSection', parent=_base['Heading2'], fontSize=11, textColor=colors.white,
    fontName='Helvetica-Bold', spaceBefore=0, spaceAfter=0,
)
STYLE_LABEL = ParagraphStyle(
    'ReportLabel', parent=_base['Normal'], fontSize=9, textColor=colors.HexColor('#555555'),
    fontName='Helvetica-Bold',
)
STYLE_VALUE = ParagraphStyle('ReportValue', parent=_base['Normal'], fontSize=9)
STYLE_PLACEHOLDER = ParagraphStyle(
    'ImagePlaceholder', parent=_base['Normal'], fontSize=9, textColor=colors.gray, alignment=TA_CENTER,
)


def _text(value):
    return escape(str(value)) if value not in (None, '') else '-'


def _section_header(title):
    t = Table([[Paragraph(escape(title), STYLE_SECTION)]], colWidths=[CONTENT_WIDTH])
    t.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), BRAND_BLUE),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ('LEFTPADDING', (0, 0), (-1, -1), 8),
    ]))
    return t


def _badge(value):
    background, text = BADGE_COLORS.get(str(value).lower(), ('#E5E7EB', '#374151'))
    style = ParagraphStyle('Badge', parent=STYLE_VALUE, textColor=colors.HexColor(text),
                           fontName='Helvetica-Bold')
    t = Table([[Paragraph(_text(str(value).upper() if value else ''), style)]])
    t.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor(background)),
        ('TOPPADDING', (0, 0), (-1, -1), 1),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 1),
    ]))
    return t


def _kv_table(rows):
    """Two (label, value) pairs per table row; values may be flowables."""
    data = []
    for i in range(0, len(rows), 2):
        pair = list(rows[i:i + 2]) + [('', '')] * (2 - len(rows[i:i + 2]))
        line = []
        for label, value in pair:
            line.append(Paragraph(escape(label), STYLE_LABEL))
            line.append(value if hasattr(value, 'wrap') else Paragraph(_text(value), STYLE_VALUE))
        data.append(line)

    t = Table(data, colWidths=[1.3 * inch, 2.2 * inch, 1.3 * inch, 2.2 * inch])
    t.setStyle(TableStyle([
        ('ROWBACKGROUNDS', (0, 0), (-1, -1), [colors.white, SECTION_BG]),
        ('GRID', (0, 0), (-1, -1), 0.25, GRID),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    return t


def _text_block(text):
    t = Table([[Paragraph(_text(text).replace('\n', '<br/>'), STYLE_VALUE)]], colWidths=[CONTENT_WIDTH])
    t.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), SECTION_BG),
        ('GRID', (0, 0), (-1, -1), 0.25, GRID),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ('LEFTPADDING', (0, 0), (-1, -1), 8),
    ]))
    return t


def _placeholder():
    t = Table([[Paragraph(IMAGE_UNAVAILABLE, STYLE_PLACEHOLDER)]],
              colWidths=[CONTENT_WIDTH], rowHeights=[0.8 * inch])
    t.setStyle(TableStyle([
        ('BOX', (0, 0), (-1, -1), 0.5, GRID),
        ('BACKGROUND', (0, 0), (-1, -1), SECTION_BG),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]))
    return t


class ReportPdfRenderer:
    """Renders resolved reports; images are fetched once per reference within the cache TTL."""

    def __init__(self, storage_base_url, cache=None, session=None, timeout=10.0):
        self.storage_base_url = storage_base_url
        self.cache = cache if cache is not None else ImageCache()
        self.session = session or requests.Session()
        self.timeout = timeout

    def resolve_image_source(self, ref, is_action_plan=False):
        """Map an image reference to something fetchable or embeddable.

        ``data:`` URIs are returned unchanged, http(s) URLs are used directly,
        and anything else is a storage key in the owner's bucket.
        """
        if is_data_uri(ref):
            return ref
        if ref.startswith(('http://', 'https://')):
            return ref
        bucket = Bucket.ACTION_PLAN_IMAGES if is_action_plan else Bucket.OBSERVATION_IMAGES
        return public_object_url(self.storage_base_url, bucket.value, ref)

    def _download(self, url):
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return to_data_uri(response.content)

    def image_data_uri(self, ref, is_action_plan=False):
        """Return an embeddable data URI for ref, or None if it cannot be fetched or decoded."""
        if not ref:
            return None
        source = self.resolve_image_source(ref, is_action_plan)
        try:
            if is_data_uri(source):
                inspect_image(decode_data_uri(source))
                return source
            return self.cache.get_or_fetch(ref, lambda: self._download(source))
        except (requests.exceptions.RequestException, CorruptedImageError, ValueError) as e:
            logger.warning(f"Image unavailable for PDF ({ref[:80]}): {e}")
            return None

    def _image_flowable(self, ref, is_action_plan=False):
        data_uri = self.image_data_uri(ref, is_action_plan)
        if data_uri is None:
            return _placeholder()
        data = decode_data_uri(data_uri)
        _, width, height = inspect_image(data)
        draw_width, draw_height = fit_within(width, height, MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT)
        return Image(io.BytesIO(data), width=draw_width, height=draw_height)

    def render(self, report, generated_at=None):
        """Lay out a resolved report (see ReportEditController.resolved_report) and return PDF bytes."""
        generated_at = generated_at or now()
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=letter,
            leftMargin=0.75 * inch, rightMargin=0.75 * inch,
            topMargin=0.75 * inch, bottomMargin=0.75 * inch,
            title=f"Safety Report {report.get('id', '')}",
        )
        story = [
            Paragraph('Safety Report', STYLE_TITLE),
            Paragraph(f"Generated on {format_display_date(generated_at)} at "
                      f"{format_display_time(generated_at.strftime('%H:%M'))}", STYLE_SUBTITLE),
            HRFlowable(width='100%', thickness=1.5, color=BRAND_BLUE),
            Spacer(1, 8),
        ]

        story += [_section_header('General Information'), _kv_table([
            ('Project', report.get('project_name')),
            ('Company', report.get('company_name')),
            ('Submitted By', report.get('submitter_name')),
            ('Department', report.get('department')),
            ('Date', format_display_date(report.get('date'))),
            ('Time', format_display_time(report.get('time'))),
            ('Location', report.get('location')),
            ('Report ID', report.get('id')),
        ]), Spacer(1, 8)]

        story += [_section_header('Observation Details'), _kv_table([
            ('Subject', report.get('subject')),
            ('Report Group', (report.get('report_group') or '').title()),
            ('Consequences', _badge(report.get('consequences'))),
            ('Likelihood', (report.get('likelihood') or '').replace('-', ' ').title()),
            ('Status', _badge(report.get('status'))),
            ('Corrective Action', 'Yes' if report.get('corrective_action') else 'No'),
            ('Categories', ', '.join(report.get('categories') or [])),
        ]), Spacer(1, 6), Paragraph('Description', STYLE_LABEL), Spacer(1, 2),
            _text_block(report.get('description')), Spacer(1, 8)]

        if report.get('supporting_image'):
            story += [_section_header('Supporting Image'), Spacer(1, 4),
                      self._image_flowable(report['supporting_image']), Spacer(1, 8)]

        plans = report.get('action_plans') or []
        if plans:
            story.append(_section_header('Action Plans'))
            for index, plan in enumerate(plans, start=1):
                block = [Spacer(1, 4), Paragraph(f"Action Plan {index}", STYLE_LABEL), _kv_table([
                    ('Action', plan.get('action')),
                    ('Due Date', format_display_date(plan.get('due_date'))),
                    ('Responsible', plan.get('responsible_person')),
                    ('Follow-up Contact', plan.get('follow_up_contact')),
                    ('Status', _badge(plan.get('status'))),
                ])]
                if plan.get('supporting_image'):
                    block += [Spacer(1, 4), self._image_flowable(plan['supporting_image'], is_action_plan=True)]
                story.append(KeepTogether(block))

        doc.build(story)
        logger.info(f"Rendered PDF for report {report.get('id')} ({len(plans)} action plan(s))")
        return buffer.getvalue()
