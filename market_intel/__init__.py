"""
Market Intelligence Engine

Turns a single business website (or a bare description) into a structured
market-intelligence report:
1. Identity extraction (name, location, category, offerings, proof assets)
2. External presence (profiles, reviews, sentiment, owner responses)
3. Marketing & conversion (CTAs, tracking, engagement paths, sales process)
4. Competitor analysis (top 3 with quick facts)
5. Consolidated executive report with weighted confidence
"""

__version__ = "0.1.0"
