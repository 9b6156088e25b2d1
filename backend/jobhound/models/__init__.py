from .background_task import BackgroundTask
from .credit import CreditPurchase, CreditUsage
from .job import Job
from .job_scan import JobScan
from .resume import Resume
from .user import User

__all__ = [
    "BackgroundTask",
    "CreditPurchase",
    "CreditUsage",
    "Job",
    "JobScan",
    "Resume",
    "User",
]
