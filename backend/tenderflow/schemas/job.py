from pydantic import BaseModel


class JobResponse(BaseModel):
    id: str
    file_name: str
    source_type: str
    status: str
    error_message: str | None
    created_at: str
    updated_at: str
    has_result: bool = False


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int
    page: int
    per_page: int


class ProcessJobRequest(BaseModel):
    job_id: str | None = None
