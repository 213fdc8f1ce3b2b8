#!/usr/bin/env python3
"""
Market Intelligence Runner

Runs the full pipeline for one business:
1. Identity extraction (website or description)
2. External presence
3. Marketing & conversion
4. Competitor analysis
5. Consolidated report

Usage:
    # Set environment variables first (or put them in .env):
    export OPENROUTER_API_KEY=your_key
    export SERPER_API_KEY=your_key   # optional, enables web search

    # Analyze a website from pre-fetched page content:
    python scripts/run_market_intelligence.py https://acme.example \
        --html-file acme.html --text-file acme.txt

    # Analyze from a service description:
    python scripts/run_market_intelligence.py --service "dental clinic" \
        --keywords "dentist stockholm,teeth whitening" --no-pacing

    # Save the report:
    python scripts/run_market_intelligence.py --service "AI SaaS" --output report.json
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from market_intel.collector import (
    MarketIntelligenceOrchestrator,
    PipelineConfig,
    PipelineInput,
)
from market_intel.utils.config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def _read_file(path: Optional[str]) -> str:
    if not path:
        return ""
    return Path(path).read_text(encoding="utf-8")


def _parse_keywords(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [k.strip() for k in value.split(",") if k.strip()]


async def run_market_intelligence(
    url: Optional[str] = None,
    service: Optional[str] = None,
    text_file: Optional[str] = None,
    html_file: Optional[str] = None,
    keywords: Optional[List[str]] = None,
    pacing: bool = True,
    output: Optional[str] = None,
):
    """Run the pipeline and print a summary."""

    load_dotenv()
    settings = get_settings()

    if not settings.has_model_credentials:
        key_name = "ANTHROPIC_API_KEY" if settings.LLM_PROVIDER.lower() == "anthropic" else "OPENROUTER_API_KEY"
        print(f"ERROR: Missing required environment variable: {key_name}")
        return None

    config = PipelineConfig.from_settings(settings)
    config.pacing.enabled = config.pacing.enabled and pacing

    if service:
        pipeline_input = PipelineInput.from_service(
            service.strip(),
            website_url=url or "",
            seed_keywords=keywords or [service.strip()],
        )
    else:
        pipeline_input = PipelineInput(
            website_url=url or "",
            text_content=_read_file(text_file),
            html=_read_file(html_file),
            seed_keywords=keywords or [],
        )

    start_time = datetime.now()
    print("\n" + "=" * 70)
    print("MARKET INTELLIGENCE")
    print("=" * 70)
    print(f"Target: {url or service}")
    print(f"Search: {'enabled' if settings.has_search else 'disabled (no SERPER_API_KEY)'}")

    orchestrator = MarketIntelligenceOrchestrator(config)
    report = await orchestrator.execute(pipeline_input)

    if report is None:
        error = (orchestrator.last_error or {}).get("error", "pipeline disabled or not configured")
        print(f"\n✗ Run did not complete: {error}")
        return None

    duration = (datetime.now() - start_time).total_seconds()
    summary = report.summary
    metrics = summary.get("metrics", {})
    usage = orchestrator.get_usage_summary()

    print("\n" + "=" * 70)
    print("REPORT COMPLETE")
    print("=" * 70)
    print(f"Report ID: {report.report_id}")
    print(f"Status: {report.status}")
    print(f"Duration: {duration:.1f} seconds")
    print(f"Business: {summary.get('business_name', 'Unknown')} ({summary.get('category', 'Unknown')})")
    print(f"Profiles discovered: {metrics.get('profiles_discovered', 0)}")
    print(f"CTAs detected: {metrics.get('total_ctas', 0)}")
    print(f"Competitors identified: {metrics.get('competitors_identified', 0)}")
    print(f"Overall confidence: {report.overall_confidence:.0%}")
    for phase, confidence in report.phase_confidences.items():
        print(f"  - {phase}: {confidence:.0%}")
    low_confidence = report.data_quality.get("low_confidence_areas", [])
    if low_confidence:
        print(f"Low confidence: {', '.join(low_confidence)}")
    print(f"Cost: ${usage.get('estimated_cost', 0):.4f}")
    print("=" * 70 + "\n")

    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(report.to_dict(), indent=2, default=str), encoding="utf-8")
        output_path.with_suffix(".md").write_text(report.report_markdown, encoding="utf-8")
        print(f"✓ Saved to: {output_path}")
    else:
        print(report.report_markdown)

    return report


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run the market intelligence pipeline for a website or service description"
    )
    parser.add_argument(
        "url",
        nargs="?",
        default=None,
        help="Website URL to analyze (e.g., https://acme.example)"
    )
    parser.add_argument(
        "--service",
        default=None,
        help="Free-text service description instead of (or alongside) a URL"
    )
    parser.add_argument(
        "--text-file",
        default=None,
        help="File with the page's visible text"
    )
    parser.add_argument(
        "--html-file",
        default=None,
        help="File with the page's raw HTML"
    )
    parser.add_argument(
        "--keywords",
        default=None,
        help="Comma-separated seed keywords for competitor discovery"
    )
    parser.add_argument(
        "--no-pacing",
        action="store_true",
        help="Disable the delay between phases"
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the report JSON here (markdown goes next to it as .md)"
    )

    args = parser.parse_args()

    if not args.url and not args.service:
        parser.error("a URL or --service is required")

    report = asyncio.run(run_market_intelligence(
        url=args.url,
        service=args.service,
        text_file=args.text_file,
        html_file=args.html_file,
        keywords=_parse_keywords(args.keywords),
        pacing=not args.no_pacing,
        output=args.output,
    ))

    sys.exit(0 if report is not None else 1)


if __name__ == "__main__":
    main()
