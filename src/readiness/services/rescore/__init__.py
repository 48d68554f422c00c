"""Re-score jobs: replay stored assessments under a new RuleSet version."""

from readiness.services.rescore.manager import RescoreJob, RescoreManager
from readiness.services.rescore.retry import PersistenceCaller, compute_backoff_seconds

__all__ = ["PersistenceCaller", "RescoreJob", "RescoreManager", "compute_backoff_seconds"]
