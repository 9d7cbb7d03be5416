# =============================================================================
# Error Types
# =============================================================================
#
# Error taxonomy used across the services:
#
#   ProviderError          : one provider attempt failed (missing credentials,
#                            transport error, non-2xx, malformed output).
#                            Carried inside Err results, never raised out of
#                            the audit orchestrator.
#   GuidelineNotFoundError : ingestion target does not exist (fatal, 404)
#   EmptyGuidelineError    : ingestion target has no text (fatal, 400)
#   BatchCommitError       : chunk batch commit failed after its retry
#                            (fatal, 500; partial state stays visible)
#   ScrapeError            : page could not be fetched or had no content
#   GenerationError        : the single generation call failed (502)
#   BrandAnalysisError     : brand profile could not be inferred (502)
# =============================================================================

from __future__ import annotations


class ProviderError(Exception):
    """A single chat provider attempt failed."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class GuidelineNotFoundError(LookupError):
    def __init__(self, guideline_id: int) -> None:
        super().__init__(f"Guideline {guideline_id} not found")
        self.guideline_id = guideline_id


class EmptyGuidelineError(ValueError):
    def __init__(self, guideline_id: int) -> None:
        super().__init__(f"Guideline {guideline_id} has no text to ingest")
        self.guideline_id = guideline_id


class BatchCommitError(RuntimeError):
    """
    A chunk batch could not be committed after the bounded retry.

    `committed` is the number of chunks persisted by earlier batches.
    """

    def __init__(
        self,
        guideline_id: int,
        batch_index: int,
        committed: int,
        cause: BaseException,
    ) -> None:
        super().__init__(
            f"Guideline {guideline_id}: batch {batch_index} failed to commit "
            f"after retry ({committed} chunks already committed): {cause}"
        )
        self.guideline_id = guideline_id
        self.batch_index = batch_index
        self.committed = committed


class ScrapeError(Exception):
    pass


class GenerationError(Exception):
    pass


class BrandAnalysisError(Exception):
    pass
