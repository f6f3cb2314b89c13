"""Typed records and value normalization shared by the pipeline stages."""

from .models import CandidateRecord, CommitResult, RawExtractionResult

__all__ = ["CandidateRecord", "CommitResult", "RawExtractionResult"]
