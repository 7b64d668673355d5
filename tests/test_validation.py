import pytest

from validation import (
    calculate_average_rating,
    calculate_discounted_price,
    count_lectures,
    extract_youtube_id,
    format_duration,
    total_course_minutes,
    validate_course_data,
    validate_email,
    validate_password,
)
from tests.conftest import course_payload


@pytest.mark.parametrize("email", ["test@example.com", "first.last@school.edu", "a+b@sub.domain.io"])
def test_validate_email_accepts_valid_addresses(email):
    assert validate_email(email) is True


@pytest.mark.parametrize("email", ["", None, "plainaddress", "no@tld", "two..dots@example.com", "sp ace@example.com"])
def test_validate_email_rejects_invalid_addresses(email):
    assert validate_email(email) is False


def test_validate_password_length():
    assert validate_password("12345") is False
    assert validate_password("123456") is True
    assert validate_password("") is False
    assert validate_password(None) is False


def test_calculate_discounted_price():
    assert calculate_discounted_price(100, 20) == 80
    assert calculate_discounted_price(100, 0) == 100
    assert calculate_discounted_price(100, None) == 100
    assert calculate_discounted_price(100, -5) == 100
    assert calculate_discounted_price(100, 150) == 0
    assert calculate_discounted_price(-10, 20) == 0
    assert calculate_discounted_price(None, 20) == 0


def test_calculate_average_rating_handles_mixed_input():
    assert calculate_average_rating([]) == 0
    assert calculate_average_rating(None) == 0
    assert calculate_average_rating([4, 5]) == 4.5
    assert calculate_average_rating([{"rating": 3}, {"rating": 5}, {"rating": None}, "bad"]) == 4


def test_format_duration():
    assert format_duration(0) == "0m"
    assert format_duration(-3) == "0m"
    assert format_duration(45) == "45m"
    assert format_duration(90) == "1h 30m"
    assert format_duration(120) == "2h 0m"


@pytest.mark.parametrize("url", [
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "https://youtu.be/dQw4w9WgXcQ",
    "https://www.youtube.com/embed/dQw4w9WgXcQ",
    "dQw4w9WgXcQ",
])
def test_extract_youtube_id(url):
    assert extract_youtube_id(url) == "dQw4w9WgXcQ"


def test_extract_youtube_id_rejects_other_urls():
    assert extract_youtube_id("https://vimeo.com/12345") is None
    assert extract_youtube_id("") is None


def test_validate_course_data_valid_payload():
    assert validate_course_data(course_payload()) == []


def test_validate_course_data_collects_every_problem():
    errors = validate_course_data({"courseTitle": "ab", "courseDescription": "short", "coursePrice": 0, "discount": 120})
    assert "Course title must be at least 3 characters long" in errors
    assert "Course description must be at least 10 characters long" in errors
    assert "Course price must be a positive number" in errors
    assert "Course thumbnail is required" in errors
    assert "Discount must be between 0 and 100" in errors


def test_lecture_counting():
    course = course_payload()
    assert count_lectures(course) == 2
    assert total_course_minutes(course) == 30
    assert count_lectures({}) == 0
