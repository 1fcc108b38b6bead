"""Generation pipeline stages: validate → ingest → route → submit → poll → extract."""
