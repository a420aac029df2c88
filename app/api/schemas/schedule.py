from pydantic import BaseModel

from app.models.working_hours import WorkingHoursInput


class ReplaceWorkingHoursRequest(BaseModel):
    hours: list[WorkingHoursInput]
