# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, kept separate from the ORM models
# in copyaudit/db/models.py so that embeddings and raw guideline text never
# leak into responses by accident.
# =============================================================================
