import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.errors import DuplicateKeyError

from course_routes import course_out, educators_by_id, get_course_or_404
from database import create_document, get_db, get_documents, serialize_doc, to_object_id, utcnow
from schemas import CamelModel, Enrollment, LectureProgress
from security import get_current_user
from validation import calculate_discounted_price, count_lectures

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/enrollments", tags=["enrollments"])


class ProgressUpdate(CamelModel):
    lecture_id: Optional[str] = None


def course_price(course: dict) -> float:
    return calculate_discounted_price(course.get("coursePrice"), course.get("discount"))


def add_student_to_course(db, course_id: str, student_id: str):
    db["course"].update_one(
        {"_id": to_object_id(course_id, "course id")},
        {"$addToSet": {"enrolledStudents": student_id}, "$set": {"updatedAt": utcnow()}},
    )


def enroll_free(db, student_id: str, course_id: str) -> dict:
    """Create a completed enrollment for a course that costs nothing after discount."""
    course = get_course_or_404(db, course_id)
    course_id = str(course["_id"])

    existing = db["enrollment"].find_one({"studentId": student_id, "courseId": course_id})
    if existing and existing.get("status") == "completed":
        raise HTTPException(status_code=400, detail="Already enrolled in this course")
    if existing and existing.get("status") == "pending":
        raise HTTPException(status_code=400, detail="A payment for this course is already in progress")
    if course_price(course) > 0:
        raise HTTPException(status_code=402, detail="Payment required to enroll in this course")

    if existing:
        # a failed checkout leaves a row behind; reuse it
        db["enrollment"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"status": "completed", "amount": 0, "updatedAt": utcnow()}, "$unset": {"failureReason": ""}},
        )
        add_student_to_course(db, course_id, student_id)
        return db["enrollment"].find_one({"_id": existing["_id"]})

    try:
        doc = create_document(
            "enrollment", Enrollment(student_id=student_id, course_id=course_id, amount=0, status="completed"),
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Already enrolled in this course")

    add_student_to_course(db, course_id, student_id)
    logger.info("Student %s enrolled in free course %s", student_id, course_id)
    return doc


def completed_enrollment_or_404(db, student_id: str, course_id: str) -> dict:
    enrollment = db["enrollment"].find_one({"studentId": student_id, "courseId": course_id, "status": "completed"})
    if not enrollment:
        raise HTTPException(status_code=404, detail="Not enrolled in this course")
    return enrollment


def lecture_ids(course: dict) -> List[str]:
    return [
        lec.get("lectureId")
        for ch in course.get("courseContent") or []
        for lec in ch.get("chapterContent") or []
    ]


@router.get("/student/enrolled-courses")
def get_enrolled_courses(user=Depends(get_current_user), db=Depends(get_db)):
    enrollments = get_documents("enrollment", {"studentId": user["id"], "status": "completed"})
    course_ids = [to_object_id(e["courseId"], "course id") for e in enrollments]
    courses = {str(c["_id"]): c for c in db["course"].find({"_id": {"$in": course_ids}})}
    educators = educators_by_id(db, list(courses.values()))

    result = []
    for e in enrollments:
        out = serialize_doc(e)
        course = courses.get(e["courseId"])
        out["course"] = course_out(course, educators.get(course.get("educator"))) if course else None
        result.append(out)
    return result


@router.post("/student/enroll/{course_id}", status_code=201)
def enroll_course(course_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    return serialize_doc(enroll_free(db, user["id"], course_id))


@router.get("/student/course/{course_id}/progress")
def get_course_progress(course_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    enrollment = completed_enrollment_or_404(db, user["id"], course_id)
    return {"progress": serialize_doc(enrollment)["progress"]}


@router.put("/student/course/{course_id}/progress")
def update_course_progress(course_id: str, payload: ProgressUpdate,
                           user=Depends(get_current_user), db=Depends(get_db)):
    if not payload.lecture_id:
        raise HTTPException(status_code=400, detail="lectureId is required")
    enrollment = completed_enrollment_or_404(db, user["id"], course_id)
    course = get_course_or_404(db, course_id)
    if payload.lecture_id not in lecture_ids(course):
        raise HTTPException(status_code=404, detail="Lecture not found in this course")

    entry = LectureProgress(lecture_id=payload.lecture_id, completed=True, completed_at=utcnow()).model_dump(by_alias=True)
    progress = [p for p in enrollment.get("progress") or [] if p.get("lectureId") != payload.lecture_id]
    progress.append(entry)
    db["enrollment"].update_one({"_id": enrollment["_id"]}, {"$set": {"progress": progress, "updatedAt": utcnow()}})

    enrollment["progress"] = progress
    out = serialize_doc(enrollment)
    total = count_lectures(course)
    out["completedLectures"] = len(progress)
    out["totalLectures"] = total
    out["percentComplete"] = round(100 * len(progress) / total) if total else 0
    return out
