"""Cron scheduling for recurring referral reward runs."""

from .config import JobDefinition, load_job_definitions
from .runner import JobScheduler

__all__ = ["JobDefinition", "JobScheduler", "load_job_definitions"]
