from tenderflow.models.user import User
from tenderflow.models.job import Job
from tenderflow.models.event import JobEvent
from tenderflow.models.result import JobResult
from tenderflow.models.work_item import WorkItem

__all__ = ["User", "Job", "JobEvent", "JobResult", "WorkItem"]
