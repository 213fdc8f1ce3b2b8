"""
Pytest Configuration and Shared Fixtures

Provides mock model and search clients plus sample page content shared by
all test modules.
"""

import pytest
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

from market_intel.analyzer import ModelClientError, ModelResult, TokenUsage
from market_intel.integrations.serper import SearchResponse
from market_intel.output.schemas import IdentityArtifact


# ============================================================================
# Model Client Helpers
# ============================================================================

def model_result(payload: Any = None, raw: str = "", model: str = "test/model") -> ModelResult:
    """Build a ModelResult as the client returns it for a JSON phase."""
    return ModelResult(
        raw=raw,
        model=model,
        usage=TokenUsage(input_tokens=100, output_tokens=50),
        finish_reason="stop",
        parsed=payload,
    )


@pytest.fixture
def mock_model_client():
    """Model client whose ``complete`` returns an empty JSON object."""
    client = MagicMock()
    client.complete = AsyncMock(return_value=model_result({}))
    client.get_usage_summary = MagicMock(return_value={
        "total_requests": 0,
        "input_tokens": 0,
        "output_tokens": 0,
        "total_tokens": 0,
        "estimated_cost": 0.0,
        "phases": {},
    })
    client.close = AsyncMock()
    return client


@pytest.fixture
def failing_model_client(mock_model_client):
    """Model client whose every completion fails."""
    mock_model_client.complete = AsyncMock(
        side_effect=ModelClientError("All models failed", phase="test", models=("a", "b"))
    )
    return mock_model_client


@pytest.fixture
def mock_search_client():
    """Search client with credentials that finds nothing."""
    client = MagicMock()
    client.has_credentials = True
    client.search = AsyncMock(side_effect=lambda query, **kwargs: SearchResponse(query=query))
    client.close = AsyncMock()
    return client


# ============================================================================
# Sample Content
# ============================================================================

@pytest.fixture
def sample_html() -> str:
    return """<html>
<head>
<title>Acme Dental | Family Dentist in Stockholm</title>
<meta name="description" content="Acme Dental offers check-ups and teeth whitening in Stockholm.">
<meta property="og:title" content="Acme Dental">
<script type="application/ld+json">{"@type": "Dentist", "name": "Acme Dental"}</script>
<script>gtag('config', 'G-ABC123');</script>
<script>fbq('init', '1234567890');</script>
</head>
<body>
<a href="/book" class="btn">Book appointment</a>
<a href="tel:+46812345678">Call us</a>
<button>Get a free quote</button>
<form action="/contact"><input type="text" name="name"><input type="email" name="email"></form>
<a href="https://www.facebook.com/acmedental">Facebook</a>
<a href="https://www.instagram.com/acmedental">Instagram</a>
</body>
</html>"""


@pytest.fixture
def sample_text() -> str:
    return (
        "Acme Dental\n"
        "Your family dentist in Stockholm since 2005.\n"
        "About us\n"
        "We are a team of six dentists dedicated to painless care.\n"
        "Services\n"
        "Check-ups, teeth whitening, implants and emergency care.\n"
        "Testimonials\n"
        "\"Best dentist I have ever had\" - Anna\n"
        "Contact: info@acmedental.se, +46 8 123 4567"
    )


@pytest.fixture
def identity_payload() -> Dict[str, Any]:
    """Phase 1 model output for a dental clinic."""
    return {
        "business_identity": {
            "name": {"value": "Acme Dental", "confidence": 0.8, "sources": []},
            "location": {"country": "Sweden", "city": "Stockholm", "confidence": 0.7},
            "category": {"value": "dentist", "taxonomy": "health", "confidence": 0.8},
        },
        "primary_offerings": [
            {"name": "Teeth Whitening", "rank": 1, "confidence": 0.8},
            {"name": "Implants", "rank": 2, "confidence": 0.6},
        ],
        "proof_assets": [{"type": "testimonial", "excerpt": "Best dentist", "confidence": 0.7}],
    }


@pytest.fixture
def identity(identity_payload) -> IdentityArtifact:
    """Validated Phase 1 artifact."""
    artifact = IdentityArtifact.model_validate({**identity_payload, "url": "https://acmedental.se"})
    artifact.overall_confidence = 0.8
    return artifact
