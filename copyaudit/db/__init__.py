# =============================================================================
# Database Package
# =============================================================================
# Provides the per-process Database handle and ORM models.
#
# Key exports:
#   - Database: async engine + transactional sessions (engine.py)
#   - Guideline, GuidelineChunk: brand guidelines and their retrieval units
#   - UsageRecord, UserUsageStats, UserUsageBreakdown: token accounting
#   - ApiKey: hashed API keys mapped to user ids
# =============================================================================
