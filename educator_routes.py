from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException

from course_routes import course_out
from database import get_db, serialize_doc, to_object_id
from security import require_educator

router = APIRouter(prefix="/api/educator", tags=["educator"])


def _students(db, ids):
    oids = [ObjectId(i) for i in ids if ObjectId.is_valid(i)]
    return list(db["user"].find({"_id": {"$in": oids}}, {"name": 1, "email": 1, "avatar": 1}))


@router.get("/courses")
def my_courses(user=Depends(require_educator), db=Depends(get_db)):
    courses = db["course"].find({"educator": user["id"]}).sort("createdAt", -1)
    return [course_out(c) for c in courses]


@router.get("/courses/{course_id}/enrolled-students")
def get_enrolled_students(course_id: str, user=Depends(require_educator), db=Depends(get_db)):
    course = db["course"].find_one({"_id": to_object_id(course_id, "course id"), "educator": user["id"]})
    if not course:
        raise HTTPException(status_code=404, detail="Course not found or unauthorized")
    return [serialize_doc(s) for s in _students(db, course.get("enrolledStudents") or [])]


@router.get("/dashboard")
def dashboard(user=Depends(require_educator), db=Depends(get_db)):
    courses = list(db["course"].find({"educator": user["id"]}, {"courseTitle": 1, "enrolledStudents": 1}))
    titles = {str(c["_id"]): c.get("courseTitle") for c in courses}

    enrollments = list(db["enrollment"].find({"courseId": {"$in": list(titles)}, "status": "completed"}))
    total_earnings = round(sum(float(e.get("amount", 0)) for e in enrollments), 2)

    students = {str(s["_id"]): s for s in _students(db, {e["studentId"] for e in enrollments})}
    enrolled_students_data = []
    for e in sorted(enrollments, key=lambda x: x["createdAt"], reverse=True):
        student = students.get(e["studentId"])
        enrolled_students_data.append({
            "courseTitle": titles.get(e["courseId"]),
            "student": serialize_doc(student) if student else None,
            "enrolledAt": serialize_doc(e).get("createdAt"),
        })

    return {
        "totalCourses": len(courses),
        "totalEnrollments": len(enrollments),
        "totalEarnings": total_earnings,
        "enrolledStudentsData": enrolled_students_data,
    }
