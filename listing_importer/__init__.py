"""Background import of business listings into prospect lists."""

from .models import Job, JobSnapshot, JobState, JobSummary, RawListing
from .orchestrator import JobOrchestrator

__all__ = ["Job", "JobOrchestrator", "JobSnapshot", "JobState", "JobSummary", "RawListing"]

__version__ = "0.1.0"
