from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from qhyccd.cameras.qhy.errors import QHYError
from qhyccd.cameras.qhy.sdk import router as sdk_router, startup as sdk_startup, shutdown as sdk_shutdown
from qhyccd.cooling.cooler import router as cooler_router
from qhyccd.filter_wheel.wheel import router as filter_wheel_router


@asynccontextmanager
async def lifespan(fast_app: FastAPI):
    sdk_startup()
    yield
    sdk_shutdown()

app = FastAPI(
    docs_url='/docs',
    redoc_url=None,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QHYError)
async def qhy_error_handler(request: Request, exc: QHYError):
    return ORJSONResponse(status_code=500, content={'Error': f"{exc}"})

app.include_router(sdk_router)
app.include_router(filter_wheel_router)
app.include_router(cooler_router)
