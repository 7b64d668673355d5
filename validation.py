import math
import re
from typing import Any, Iterable, List, Mapping, Optional

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
YOUTUBE_RE = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")
YOUTUBE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Addresses are stored and looked up trimmed and lowercased."""
    if email is None:
        return None
    return email.strip().lower()


def validate_email(email: Optional[str]) -> bool:
    if not email:
        return False
    if ".." in email:
        return False
    return bool(EMAIL_RE.match(email))


def validate_password(password: Optional[str]) -> bool:
    if not password:
        return False
    return len(password) >= 6


def calculate_discounted_price(original_price, discount_percentage) -> float:
    if not original_price or original_price < 0:
        return 0
    if not discount_percentage or discount_percentage < 0:
        return original_price
    discount = (discount_percentage * original_price) / 100
    return max(0, original_price - discount)


def calculate_average_rating(ratings: Optional[Iterable[Any]]) -> float:
    if not ratings:
        return 0
    total = 0.0
    count = 0
    for rating in ratings:
        value = rating.get("rating") if isinstance(rating, Mapping) else rating
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            continue
        total += value
        count += 1
    return total / count if count else 0


def format_duration(minutes) -> str:
    if not minutes or minutes < 0:
        return "0m"
    if minutes < 60:
        return f"{round(minutes)}m"
    hrs = int(minutes // 60)
    mins = round(minutes % 60)
    return f"{hrs}h {mins}m"


def extract_youtube_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = YOUTUBE_RE.match(url)
    if not match:
        # a bare video id
        if YOUTUBE_ID_RE.match(url):
            return url
        return None
    video_id = match.group(2)
    return video_id if len(video_id) == 11 else None


def validate_course_data(data: Mapping[str, Any]) -> List[str]:
    """Return a list of human readable problems with a course payload; empty when valid."""
    errors = []

    title = data.get("courseTitle") or ""
    if len(title.strip()) < 3:
        errors.append("Course title must be at least 3 characters long")

    description = data.get("courseDescription") or ""
    if len(description.strip()) < 10:
        errors.append("Course description must be at least 10 characters long")

    price = data.get("coursePrice")
    if not isinstance(price, (int, float)) or price <= 0:
        errors.append("Course price must be a positive number")

    if not data.get("courseThumbnail"):
        errors.append("Course thumbnail is required")

    discount = data.get("discount") or 0
    if not isinstance(discount, (int, float)) or not 0 <= discount <= 100:
        errors.append("Discount must be between 0 and 100")

    return errors


def count_lectures(course: Mapping[str, Any]) -> int:
    return sum(len(ch.get("chapterContent") or []) for ch in course.get("courseContent") or [])


def total_course_minutes(course: Mapping[str, Any]) -> float:
    return sum(
        lec.get("lectureDuration") or 0
        for ch in course.get("courseContent") or []
        for lec in ch.get("chapterContent") or []
    )
