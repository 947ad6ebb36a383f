"""AI analysis backends (OpenAI, Gemini, stub)."""
