"""chatharvest: session & query orchestration for conversational-AI web front-ends."""

__version__ = "0.1.0"
