import logging
from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/llm", tags=["llm"])

# keyword -> completion used when MOCK_MODE is on
MOCK_RESPONSES = {
    "javascript": " programming, web development, frontend",
    "python": " programming, data science, machine learning",
    "react": " development, frontend, web applications",
    "node": "js backend development, server-side programming",
    "data": " science, analytics, machine learning",
    "machine": " learning, AI, artificial intelligence",
    "web": " development, design, frontend, backend",
    "mobile": " app development, iOS, Android",
    "design": " UI/UX, graphic design, web design",
    "business": " management, entrepreneurship, marketing",
    "marketing": " digital marketing, social media, SEO",
    "finance": " investment, accounting, financial planning",
    "health": "care, medical, nursing, fitness",
    "cooking": " culinary arts, food preparation, recipes",
    "music": " production, instruments, theory",
    "art": " drawing, painting, digital art",
    "photography": " camera techniques, editing, composition",
    "language": " learning, speaking, grammar",
    "math": "ematics, algebra, calculus, statistics",
    "science": " physics, chemistry, biology",
    "history": " world history, ancient civilizations",
    "psychology": " human behavior, mental health",
    "philosophy": " ethics, logic, critical thinking",
    "java": " programming, enterprise development",
    "c++": " programming, systems development",
    "sql": " database, data management",
    "aws": " cloud computing, amazon web services",
    "docker": " containerization, devops",
    "git": " version control, software development",
}
DEFAULT_MOCK_RESPONSE = " courses, learning, education"

PROMPT_TEMPLATE = (
    "You are a helpful AI assistant. Complete the following course search query with relevant "
    "keywords. Only provide the completion, no explanations.\n\nQuery: {prompt}\nCompletion:"
)


class CompletionRequest(BaseModel):
    prompt: Optional[str] = None
    context: str = ""


class LLMError(Exception):
    pass


def mock_completion(prompt: str) -> str:
    lowered = prompt.lower().strip()
    for key, response in MOCK_RESPONSES.items():
        if key in lowered:
            return response
    return DEFAULT_MOCK_RESPONSE


def call_ollama(prompt: str) -> str:
    try:
        res = httpx.post(
            f"{config.OLLAMA_URL}/api/generate",
            json={
                "model": config.OLLAMA_MODEL,
                "prompt": PROMPT_TEMPLATE.format(prompt=prompt),
                "stream": False,
                "options": {"temperature": 0.3, "top_p": 0.9, "num_predict": 50, "stop": ["\n", ".", "!", "?"]},
            },
            timeout=config.LLM_TIMEOUT_SECONDS,
        )
        res.raise_for_status()
        return res.json()["response"].strip()
    except (httpx.HTTPError, KeyError, ValueError) as e:
        logger.error("Ollama API error: %s", e)
        raise LLMError("Failed to get completion from Ollama") from e


def call_custom_llm(prompt: str) -> str:
    try:
        res = httpx.post(
            config.CUSTOM_LLM_URL,
            json={"prompt": f"Complete this search query: {prompt}", "max_tokens": 100, "temperature": 0.1},
            timeout=config.LLM_TIMEOUT_SECONDS,
        )
        res.raise_for_status()
        data = res.json()
        return data.get("completion") or data.get("text") or ""
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Custom LLM API error: %s", e)
        raise LLMError("Failed to get completion from custom LLM") from e


def current_mode() -> str:
    if config.LLM_MOCK_MODE:
        return "mock"
    if config.CUSTOM_LLM_URL:
        return "custom"
    return "ollama"


@router.post("/complete")
def complete(req: CompletionRequest):
    if not req.prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")

    mode = current_mode()
    try:
        if mode == "mock":
            completion = mock_completion(req.prompt)
        elif mode == "custom":
            completion = call_custom_llm(req.prompt)
        else:
            completion = call_ollama(req.prompt)
    except LLMError as e:
        return JSONResponse(status_code=500, content={"detail": "Failed to generate completion", "error": str(e)})

    return {
        "success": True,
        "completion": completion,
        "prompt": req.prompt,
        "model": {"mock": "mock", "custom": "custom"}.get(mode, config.OLLAMA_MODEL),
    }


@router.get("/health")
def health():
    mode = current_mode()
    if mode == "mock":
        return {"status": "healthy", "mode": "mock", "message": "Mock mode enabled"}

    url = (
        config.CUSTOM_LLM_URL.replace("/api/complete", "/health")
        if mode == "custom"
        else f"{config.OLLAMA_URL}/api/tags"
    )
    try:
        httpx.get(url, timeout=5).raise_for_status()
    except httpx.HTTPError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": "LLM service not available", "details": str(e)},
        )
    return {"status": "healthy", "mode": mode, "model": config.OLLAMA_MODEL}
