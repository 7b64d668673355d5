import json
import logging
from datetime import datetime, timezone
from html import escape

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from database import get_db
from ssr_service import get_course_data, get_platform_stats, get_ssr_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ssr", tags=["ssr"])

PAGE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <script src="https://cdn.tailwindcss.com"></script>
  </head>
  <body>
    <div id="root">{body}</div>
    <script type="application/json" id="ssr-data">{data}</script>
  </body>
</html>
"""


def _page(title: str, body: str, data) -> str:
    payload = json.dumps(data).replace("</", "<\\/")
    return PAGE.format(title=escape(title), body=body, data=payload)


def render_course_card(course: dict) -> str:
    return (
        '<div class="bg-white rounded-lg shadow p-4">'
        f'<img src="{escape(course["thumbnail"] or "")}" alt="" class="w-full rounded">'
        f'<h3 class="text-lg font-semibold mt-2">{escape(course["title"] or "")}</h3>'
        f'<p class="text-gray-500">{escape(course["educator"])}</p>'
        f'<p class="text-gray-700">{escape(course["duration"])} &middot; ${course["price"]}</p>'
        f'<a href="/api/ssr/course/{escape(course["id"])}" class="text-blue-600">View course</a>'
        "</div>"
    )


def render_testimonial(t: dict) -> str:
    return (
        '<blockquote class="bg-gray-50 rounded-lg p-4">'
        f'<p>&ldquo;{escape(t["quote"])}&rdquo;</p>'
        f'<footer class="text-sm text-gray-500">{escape(t["name"])}, {escape(t["course"] or "")} ({t["rating"]}/5)</footer>'
        "</blockquote>"
    )


def render_stats(stats: dict) -> str:
    return (
        '<div class="grid grid-cols-1 md:grid-cols-3 gap-8">'
        f'<div><h3 class="text-4xl font-bold">{stats["totalCourses"]}</h3><p>Total Courses</p></div>'
        f'<div><h3 class="text-4xl font-bold">{stats["totalStudents"]:,}</h3><p>Active Students</p></div>'
        f'<div><h3 class="text-4xl font-bold">{stats["totalEducators"]}</h3><p>Expert Educators</p></div>'
        "</div>"
    )


@router.get("", response_class=HTMLResponse)
def ssr_home(db=Depends(get_db)):
    data = get_ssr_data(db)
    body = (
        '<main class="container mx-auto px-4 py-12">'
        '<h1 class="text-4xl font-bold mb-8">Learn anything, anytime</h1>'
        f'{render_stats(data["stats"])}'
        '<h2 class="text-2xl font-semibold mt-12 mb-4">Latest courses</h2>'
        '<div class="grid grid-cols-1 md:grid-cols-3 gap-6">'
        f'{"".join(render_course_card(c) for c in data["courses"])}'
        "</div>"
        '<h2 class="text-2xl font-semibold mt-12 mb-4">What learners say</h2>'
        f'{"".join(render_testimonial(t) for t in data["testimonials"])}'
        "</main>"
    )
    logger.debug("Rendered SSR home with %d courses", len(data["courses"]))
    return _page("LMS Platform - Server Side Rendered", body, data)


@router.get("/course/{course_id}", response_class=HTMLResponse)
def ssr_course(course_id: str, db=Depends(get_db)):
    course = get_course_data(db, course_id)
    if not course:
        return HTMLResponse("Course not found", status_code=404)
    body = (
        '<div class="max-w-4xl mx-auto bg-white rounded-lg shadow-lg p-8">'
        f'<h1 class="text-4xl font-bold mb-6">{escape(course["title"] or "")}</h1>'
        f'<div class="text-lg text-gray-600 mb-8">{escape(course["description"] or "")}</div>'
        f'<p><strong>Duration:</strong> {escape(course["duration"])}</p>'
        f'<p><strong>Length:</strong> {escape(course["length"])}</p>'
        f'<p><strong>Price:</strong> ${course["price"]}</p>'
        f'<p><strong>Educator:</strong> {escape(course["educator"])}</p>'
        '<a href="/api/ssr" class="text-blue-600">Back to SSR Home</a>'
        "</div>"
    )
    return _page(f'{course["title"]} - SSR Demo', body, course)


@router.get("/stats", response_class=HTMLResponse)
def ssr_stats(db=Depends(get_db)):
    stats = get_platform_stats(db)
    rendered_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    body = (
        '<div class="max-w-4xl mx-auto text-center py-12">'
        '<h1 class="text-5xl font-bold mb-8">Platform Statistics</h1>'
        f"{render_stats(stats)}"
        f'<p class="mt-12">These statistics were rendered on the server at {rendered_at}</p>'
        '<a href="/api/ssr" class="text-blue-600">Back to SSR Home</a>'
        "</div>"
    )
    return _page("Platform Stats - SSR Demo", body, stats)


@router.get("/data")
def ssr_data(db=Depends(get_db)):
    return get_ssr_data(db)
