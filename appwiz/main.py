from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from appwiz.api.routes import router
from appwiz.api.sessions import WIZARDS
from appwiz.core.errors import StepNotActiveError, UnknownStepError, UnknownWizardError, WizardError
from appwiz.observability.logging import log
from appwiz.settings import settings

app = FastAPI(title="Application Wizard API")

# Mobile and web clients call from other origins; restrict via CORS_ORIGINS in prod.
origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Application wizard API is running. See /api/wizards/{wizard} for deposit and loan.",
        "wizards": sorted(WIZARDS),
    }


@app.get("/health")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Error mapping: wizard misuse is the client's problem (4xx); anything else is
# logged and reported as a plain 500 without internals.
# ---------------------------------------------------------------------------
@app.exception_handler(UnknownWizardError)
async def unknown_wizard_handler(request: Request, exc: UnknownWizardError):
    return JSONResponse(status_code=404, content={"status": "error", "detail": str(exc)})


@app.exception_handler(UnknownStepError)
async def unknown_step_handler(request: Request, exc: UnknownStepError):
    return JSONResponse(status_code=404, content={"status": "error", "detail": str(exc), "stepId": exc.step_id})


@app.exception_handler(StepNotActiveError)
async def step_not_active_handler(request: Request, exc: StepNotActiveError):
    return JSONResponse(status_code=409, content={"status": "error", "detail": str(exc)})


@app.exception_handler(WizardError)
async def wizard_error_handler(request: Request, exc: WizardError):
    return JSONResponse(status_code=400, content={"status": "error", "detail": str(exc)})


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    log(event="unhandled_exception", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:500])
    return JSONResponse(status_code=500, content={"status": "error", "detail": "Internal error"})


# Boot snapshot (stdout)
print(f"[boot] DRAFT_STORE={settings.DRAFT_STORE} REMOTE_MODE={settings.REMOTE_MODE} wizards={sorted(WIZARDS)}")
