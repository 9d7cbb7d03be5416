# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration
#   - tasks.py: background guideline ingestion
#
# Ingestion of a large guideline embeds hundreds of chunks and writes them
# in batches; the API can hand it to a worker and return a task id.
# =============================================================================
