import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from webclone.capture import capture_site
from webclone.config import get_settings
from webclone.exceptions import CloneError
from webclone.logging_config import setup_logging
from webclone.models import (
    CaptureRequest,
    CaptureResult,
    CloneResponse,
    ErrorResponse,
    SynthesisRequest,
)
from webclone.synthesis import synthesize_clone

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings)
    logger.info("Clone service starting (provider=%s)", settings.llm_provider)
    yield


app = FastAPI(title="Website Clone API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

def _validation_message(errors) -> str:
    """
    Pick a client-facing message for a rejected request body.

    Only errors on a top-level field itself (absent, wrong type, empty) get the
    short messages. Errors nested inside a supplied layout are spelled out.
    """
    fields = set()
    for err in errors:
        loc = tuple(err.get("loc") or ())
        if len(loc) == 2 and loc[0] == "body":
            fields.add(str(loc[1]))

    if "url" in fields:
        return "Invalid URL"
    if fields & {"layout", "screenshot"}:
        return "Missing layout or screenshot"
    if not errors:
        return "Invalid request"
    first = errors[0]
    where = ".".join(str(part) for part in (first.get("loc") or ())[1:])
    return f"Invalid request{': ' + where if where else ''} ({first.get('msg', 'invalid')})"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _validation_message(exc.errors())})


@app.exception_handler(CloneError)
async def clone_error_handler(request: Request, exc: CloneError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/")
def root():
    return {"message": "Backend is running"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post(
    "/api/fetch-site",
    response_model=CaptureResult,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def fetch_site(request: CaptureRequest):
    """
    Render a page in a headless browser and return its HTML, stylesheets,
    full-page screenshot and layout summary.
    """
    return await capture_site(request)


@app.post("/api/generate-clone", response_model=CloneResponse, responses=ERROR_RESPONSES)
async def generate_clone(request: SynthesisRequest):
    """Generate an HTML/CSS clone from a captured layout + screenshot."""
    result = await synthesize_clone(request)
    return CloneResponse(html=result.html, css=result.css)
