"""Provider adapter implementations.

Each adapter turns a ``ProviderEnvelope`` into HTTP calls:
  fal    — POST fal.run/{endpoint} → result (sync); uploads to Fal storage
  gemini — POST models/{model}:generateContent → result (sync)
  veo    — POST models/{model}:predictLongRunning → poll operation (async)
"""
