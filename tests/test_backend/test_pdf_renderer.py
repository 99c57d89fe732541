"""Tests for PDF rendering of resolved reports."""
import datetime
import pytest
import requests
from unittest.mock import Mock
from backend.services.image_cache import ImageCache
from backend.services.pdf_renderer import ReportPdfRenderer
from shared.utils import to_data_uri


@pytest.fixture
def session(png_bytes):
    session = Mock()
    response = Mock()
    response.content = png_bytes
    response.raise_for_status.return_value = None
    session.get.return_value = response
    return session


@pytest.fixture
def renderer(session):
    return ReportPdfRenderer('https://portal.example.com', cache=ImageCache(ttl=300), session=session)


@pytest.fixture
def resolved_report():
    return {
        'id': 'c0ffee00-0000-0000-0000-000000000001',
        'project_name': 'North Yard Expansion',
        'company_name': 'Acme Builders',
        'submitter_name': 'Jordan Lee',
        'department': 'Operations',
        'date': '2025-01-05',
        'time': '14:05',
        'location': 'Gate 3',
        'description': 'Worker on scaffold <without> harness & lanyard',
        'subject': 'SOSV : Safety Observation Site Visit',
        'report_group': 'safety',
        'consequences': 'major',
        'likelihood': 'very-likely',
        'status': 'open',
        'corrective_action': True,
        'supporting_image': '1736000000000-abcd1234-gate.png',
        'categories': ['PPE', 'Working at Height'],
        'action_plans': [
            {
                'action': 'Provide harness training',
                'due_date': '2025-02-01',
                'responsible_person': 'Sam Patel',
                'follow_up_contact': 'Alex Kim',
                'status': 'open',
                'supporting_image': '1736000000001-abcd1234-fix.png',
            },
            {
                'action': 'Inspect scaffold tags',
                'due_date': '2025-02-10',
                'responsible_person': 'Sam Patel',
                'follow_up_contact': 'Alex Kim',
                'status': 'closed',
                'supporting_image': None,
            },
        ],
    }


def test_resolve_image_source(renderer):
    assert renderer.resolve_image_source('k.png') == \
        'https://portal.example.com/storage/v1/object/public/safety-images/k.png'
    assert renderer.resolve_image_source('k.png', is_action_plan=True) == \
        'https://portal.example.com/storage/v1/object/public/action-plan-images/k.png'
    assert renderer.resolve_image_source('https://cdn.example.com/k.png') == 'https://cdn.example.com/k.png'
    assert renderer.resolve_image_source('data:image/png;base64,AAAA') == 'data:image/png;base64,AAAA'


def test_render_produces_pdf(renderer, resolved_report, session):
    pdf = renderer.render(resolved_report, generated_at=datetime.datetime(2025, 1, 6, 9, 30))

    assert pdf.startswith(b'%PDF')
    assert len(pdf) > 1000
    fetched = [call.args[0] for call in session.get.call_args_list]
    assert fetched == [
        'https://portal.example.com/storage/v1/object/public/safety-images/1736000000000-abcd1234-gate.png',
        'https://portal.example.com/storage/v1/object/public/action-plan-images/1736000000001-abcd1234-fix.png',
    ]


def test_images_are_fetched_once_within_ttl(renderer, resolved_report, session):
    renderer.render(resolved_report)
    renderer.render(resolved_report)

    assert session.get.call_count == 2
    assert renderer.cache.hits == 2


def test_fetch_failure_renders_placeholder_and_is_not_cached(renderer, resolved_report, session):
    session.get.side_effect = requests.exceptions.ConnectionError('storage down')

    pdf = renderer.render(resolved_report)

    assert pdf.startswith(b'%PDF')
    assert len(renderer.cache) == 0


def test_corrupt_download_is_unavailable(renderer, session):
    session.get.return_value.content = b'<html>not found</html>'
    assert renderer.image_data_uri('k.png') is None


def test_data_uri_is_embedded_without_fetch(renderer, session, png_bytes):
    uri = to_data_uri(png_bytes)

    assert renderer.image_data_uri(uri) == uri
    session.get.assert_not_called()
    assert len(renderer.cache) == 0


def test_report_without_images_or_plans(renderer, resolved_report, session):
    resolved_report.update(supporting_image=None, action_plans=[], department=None, categories=[])

    assert renderer.render(resolved_report).startswith(b'%PDF')
    session.get.assert_not_called()
