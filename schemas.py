"""
Database Schemas

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercased class name:
- User -> "user" collection
- Course -> "course" collection
- Enrollment -> "enrollment" collection
- OTP -> "otp" collection

Fields are snake_case in Python and stored/served in camelCase
(course_title -> "courseTitle").
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

Role = Literal["student", "educator"]
EnrollmentStatus = Literal["pending", "completed", "failed"]
OTPType = Literal["email", "phone"]
OTPPurpose = Literal["registration", "login", "password_reset"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _new_id() -> str:
    return uuid.uuid4().hex


class User(CamelModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address (unique)")
    password: Optional[str] = Field(None, description="bcrypt hash, absent for Google accounts")
    google_id: Optional[str] = Field(None, description="Google profile id")
    avatar: Optional[str] = None
    role: Role = Field("student", description="student or educator")


class Lecture(CamelModel):
    lecture_id: str = Field(default_factory=_new_id)
    lecture_title: str
    lecture_duration: float = Field(0, ge=0, description="Minutes")
    lecture_url: Optional[str] = None
    is_preview_free: bool = False
    lecture_order: int = Field(1, ge=0)


class Chapter(CamelModel):
    chapter_id: str = Field(default_factory=_new_id)
    chapter_order: int = Field(1, ge=0)
    chapter_title: str
    chapter_content: List[Lecture] = Field(default_factory=list)


class CourseRating(CamelModel):
    user_id: str
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = None


class Course(CamelModel):
    """
    Courses collection schema
    Collection name: "course"
    """
    course_title: str = Field(..., description="Course title")
    course_description: str = Field(..., description="Detailed description (may contain HTML)")
    course_price: float = Field(..., ge=0, description="List price")
    discount: float = Field(0, ge=0, le=100, description="Discount percentage")
    course_thumbnail: Optional[str] = Field(None, description="Thumbnail image URL")
    is_published: bool = Field(True, description="Whether the course is visible in the catalog")
    course_content: List[Chapter] = Field(default_factory=list)
    course_ratings: List[CourseRating] = Field(default_factory=list)
    enrolled_students: List[str] = Field(default_factory=list)
    educator: str = Field(..., description="Owning educator user id")


class LectureProgress(CamelModel):
    lecture_id: str
    completed: bool = True
    completed_at: Optional[datetime] = None


class Enrollment(CamelModel):
    """
    Enrollments collection schema
    Collection name: "enrollment"
    """
    student_id: str
    course_id: str
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    amount: float = Field(0, ge=0)
    currency: Optional[str] = None
    status: EnrollmentStatus = "pending"
    progress: List[LectureProgress] = Field(default_factory=list)


class OTP(CamelModel):
    """
    One-time password collection schema
    Collection name: "otp"
    """
    identifier: str = Field(..., description="Email address or phone number")
    otp: str = Field(..., pattern=r"^\d{6}$")
    type: OTPType
    purpose: OTPPurpose = "registration"
    is_verified: bool = False
    expires_at: datetime
    attempts: int = 0
    max_attempts: int = 3
