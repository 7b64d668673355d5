import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from database import create_document, get_db, serialize_doc, to_object_id, utcnow
from schemas import CamelModel, Chapter, Course, CourseRating
from security import get_current_user, require_educator
from validation import (
    calculate_average_rating,
    calculate_discounted_price,
    count_lectures,
    validate_course_data,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/courses", tags=["courses"])

EDITABLE_FIELDS = (
    "courseTitle", "courseDescription", "coursePrice", "discount",
    "courseThumbnail", "isPublished", "courseContent",
)


class CourseIn(CamelModel):
    course_title: Optional[str] = None
    course_description: Optional[str] = None
    course_price: Optional[float] = None
    discount: Optional[float] = 0
    course_thumbnail: Optional[str] = None
    is_published: Optional[bool] = True
    course_content: List[Chapter] = Field(default_factory=list)


class CourseUpdate(CamelModel):
    course_title: Optional[str] = None
    course_description: Optional[str] = None
    course_price: Optional[float] = None
    discount: Optional[float] = None
    course_thumbnail: Optional[str] = None
    is_published: Optional[bool] = None
    course_content: Optional[List[Chapter]] = None


class RatingIn(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = None


def course_out(course: dict, educator: Optional[dict] = None) -> dict:
    """Serialize a course document and add the figures the catalog displays."""
    out = serialize_doc(course)
    out["averageRating"] = round(calculate_average_rating(course.get("courseRatings")), 1)
    out["discountedPrice"] = calculate_discounted_price(course.get("coursePrice"), course.get("discount"))
    out["totalLectures"] = count_lectures(course)
    out["enrolledCount"] = len(course.get("enrolledStudents") or [])
    if educator is not None:
        out["educator"] = {"_id": str(educator["_id"]), "name": educator.get("name")}
    return out


def educators_by_id(db, courses: List[dict]) -> dict:
    ids = {c.get("educator") for c in courses if c.get("educator")}
    oids = []
    for i in ids:
        try:
            oids.append(to_object_id(i))
        except HTTPException:
            continue
    return {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": oids}}, {"name": 1, "avatar": 1})}


def get_course_or_404(db, course_id: str) -> dict:
    course = db["course"].find_one({"_id": to_object_id(course_id, "course id")})
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


def get_owned_course(db, course_id: str, user: dict) -> dict:
    course = get_course_or_404(db, course_id)
    if course.get("educator") != user["id"]:
        raise HTTPException(status_code=403, detail="You can only modify your own courses")
    return course


@router.get("")
def list_courses(published: Optional[bool] = None, db=Depends(get_db)):
    filter_query = {}
    if published is not None:
        filter_query["isPublished"] = published
    courses = list(db["course"].find(filter_query).sort("createdAt", -1))
    educators = educators_by_id(db, courses)
    return [course_out(c, educators.get(c.get("educator"))) for c in courses]


@router.get("/{course_id}")
def get_course(course_id: str, db=Depends(get_db)):
    course = get_course_or_404(db, course_id)
    educators = educators_by_id(db, [course])
    return course_out(course, educators.get(course.get("educator")))


@router.post("", status_code=201)
def add_course(payload: CourseIn, user=Depends(require_educator)):
    data = payload.model_dump(by_alias=True, exclude_none=True)
    errors = validate_course_data(data)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

    doc = create_document("course", Course(**data, educator=user["id"]))
    logger.info("Educator %s created course %s", user["id"], doc["_id"])
    return {"message": "Course created successfully", "course": course_out(doc)}


@router.put("/{course_id}")
def update_course(course_id: str, payload: CourseUpdate, user=Depends(require_educator), db=Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    changes = payload.model_dump(by_alias=True, exclude_unset=True)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}

    errors = validate_course_data({**course, **changes})
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

    changes["updatedAt"] = utcnow()
    db["course"].update_one({"_id": course["_id"]}, {"$set": changes})
    updated = db["course"].find_one({"_id": course["_id"]})
    return {"message": "Course updated successfully", "course": course_out(updated)}


@router.delete("/{course_id}")
def delete_course(course_id: str, user=Depends(require_educator), db=Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    db["course"].delete_one({"_id": course["_id"]})
    logger.info("Educator %s deleted course %s", user["id"], course_id)
    return {"message": "Course deleted successfully"}


@router.post("/{course_id}/rating")
def rate_course(course_id: str, payload: RatingIn, user=Depends(get_current_user), db=Depends(get_db)):
    course = get_course_or_404(db, course_id)
    enrolled = db["enrollment"].find_one({
        "studentId": user["id"], "courseId": str(course["_id"]), "status": "completed",
    })
    if not enrolled:
        raise HTTPException(status_code=403, detail="Only enrolled students can rate this course")

    rating = CourseRating(user_id=user["id"], rating=payload.rating, review=payload.review)
    ratings = [r for r in course.get("courseRatings") or [] if r.get("userId") != user["id"]]
    ratings.append(rating.model_dump(by_alias=True))
    db["course"].update_one({"_id": course["_id"]}, {"$set": {"courseRatings": ratings, "updatedAt": utcnow()}})
    return {
        "message": "Rating saved",
        "averageRating": round(calculate_average_rating(ratings), 1),
        "ratingsCount": len(ratings),
    }
