"""Text-completion collaborators: guide prompts and the story judge.

Both talk to an OpenAI-compatible chat endpoint and fall back to
deterministic local output when it is unconfigured or failing.
"""
