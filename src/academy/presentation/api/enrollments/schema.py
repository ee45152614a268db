from pydantic import BaseModel, Field


class EnrollRequestSchema(BaseModel):
    course_id: str
    student_id: str
    email: str = ""
    name: str = ""


class ProgressRequestSchema(BaseModel):
    progress: float = Field(..., description="Clamped to 0-100")


class ModuleCompletedRequestSchema(BaseModel):
    module_id: str
