"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build prompts from the request and the selected candidate places.
- Call Groq LLM to re-rank candidates and generate short reasons.
- Graceful fallback when the LLM is unavailable, slow or returns invalid output.
"""
