"""
Pydantic schemas for notification requests.
"""
from pydantic import BaseModel, Field, EmailStr, ConfigDict


class NotificationCreate(BaseModel):
    to: EmailStr
    subject: str = Field(default="", max_length=200)
    body: str = Field(default="", max_length=10000)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "to": "a@b.com",
            "subject": "Your export is ready",
            "body": "Download it from the dashboard."
        }
    })
