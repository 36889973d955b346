"""
BoldMove - Guided discovery and action pipeline.

Packages:
- boldmove: Settings, Supabase access, LLM client, CLI and web app
- journey: Profile reconciliation, Five Whys interview, tiny steps, progress
"""

__version__ = "1.0.0"
