"""Answer analysis: tokenization, position scoring and analysis caching.

  1. Tokenizer/Matcher: exact-token term positions (pure)
  2. Visibility scorer: visibility index and share of answers (pure)
  3. Position extraction: brand and competitor metrics for one answer
  4. Backend payload schema: validation and coercion of analysis JSON
  5. Analysis cache: per-run map, persistent store, citation domain cache
"""
