from typing import Optional

from bson import ObjectId

from course_routes import educators_by_id
from validation import count_lectures, format_duration, total_course_minutes

COURSE_FIELDS = {
    "courseTitle": 1, "courseDescription": 1, "coursePrice": 1,
    "courseThumbnail": 1, "courseContent": 1, "educator": 1,
}


def _card(course: dict, educator: Optional[dict]) -> dict:
    return {
        "id": str(course["_id"]),
        "title": course.get("courseTitle"),
        "description": course.get("courseDescription"),
        "price": course.get("coursePrice"),
        "thumbnail": course.get("courseThumbnail"),
        "educator": (educator or {}).get("name") or "Educator",
        "duration": f"{count_lectures(course)} lectures",
        "length": format_duration(total_course_minutes(course)),
    }


def get_platform_stats(db) -> dict:
    return {
        "totalCourses": db["course"].count_documents({"isPublished": True}),
        "totalStudents": db["user"].count_documents({"role": "student"}),
        "totalEducators": db["user"].count_documents({"role": "educator"}),
    }


def get_testimonials(db, limit: int = 6) -> list:
    courses = db["course"].find(
        {"isPublished": True, "courseRatings": {"$exists": True, "$ne": []}},
        {"courseTitle": 1, "courseRatings": 1},
    )
    testimonials = []
    for course in courses:
        for rating in course.get("courseRatings") or []:
            if not rating.get("review"):
                continue
            testimonials.append({"course": course.get("courseTitle"), "userId": rating.get("userId"),
                                 "quote": rating["review"], "rating": rating.get("rating")})
            if len(testimonials) >= limit:
                break
        if len(testimonials) >= limit:
            break

    ids = [ObjectId(t["userId"]) for t in testimonials if ObjectId.is_valid(t.get("userId") or "")]
    users = {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": ids}}, {"name": 1, "avatar": 1})}
    for t in testimonials:
        user = users.get(t.pop("userId"), {})
        t["name"] = user.get("name") or "Anonymous"
        t["avatar"] = user.get("avatar") or ""
    return testimonials


def get_ssr_data(db) -> dict:
    courses = list(db["course"].find({"isPublished": True}, COURSE_FIELDS).sort("createdAt", -1).limit(6))
    educators = educators_by_id(db, courses)
    return {
        "courses": [_card(c, educators.get(c.get("educator"))) for c in courses],
        "testimonials": get_testimonials(db),
        "stats": get_platform_stats(db),
    }


def get_course_data(db, course_id: str) -> Optional[dict]:
    if not ObjectId.is_valid(course_id):
        return None
    course = db["course"].find_one({"_id": ObjectId(course_id)}, COURSE_FIELDS)
    if not course:
        return None
    educators = educators_by_id(db, [course])
    return _card(course, educators.get(course.get("educator")))
