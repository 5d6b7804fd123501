"""
Safe meetup recommendation engine.

Responsibilities:
- Classify the user's free-text purpose into an intent.
- Fetch places, camera points and community report cells around the user.
- Merge report cells into community hotspots.
- Score, deduplicate and select a bounded, evidence-first list.
- Optionally let an LLM reorder the selection, and cache the response.
"""
