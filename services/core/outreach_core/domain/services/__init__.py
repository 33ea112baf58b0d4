"""Domain services for Outreach."""

from outreach_core.domain.services.credentials import Account, CredentialBundleStore
from outreach_core.domain.services.job_queue import BulkAdmission, JobHandle, JobQueue
from outreach_core.domain.services.jobs import JobService

__all__ = [
    "Account",
    "BulkAdmission",
    "CredentialBundleStore",
    "JobHandle",
    "JobQueue",
    "JobService",
]
