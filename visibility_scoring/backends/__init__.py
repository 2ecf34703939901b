"""Analysis backends.

Interchangeable inference providers behind one contract:
  - OpenRouterBackend / OpenAIBackend: OpenAI-compatible chat completions, safe for batch use
  - OllamaBackend: locally hosted model, serialize-only (single-flight queue)
  - FallbackBackend: ordered chain, first success wins
"""
