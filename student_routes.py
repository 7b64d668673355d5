from fastapi import APIRouter, Depends

from course_routes import course_out, educators_by_id
from database import get_db, get_documents
from enrollment_routes import enroll_free
from security import get_current_user

router = APIRouter(prefix="/api/student", tags=["student"])


@router.post("/enroll/{course_id}")
def enroll_in_course(course_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    enroll_free(db, user["id"], course_id)
    return {"message": "Successfully enrolled in course"}


@router.get("/enrolled-courses")
def get_enrolled_courses(user=Depends(get_current_user), db=Depends(get_db)):
    courses = get_documents("course", {"enrolledStudents": user["id"]})
    educators = educators_by_id(db, courses)
    return [course_out(c, educators.get(c.get("educator"))) for c in courses]
