import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from kadmctl.api.middleware import AuthMiddleware
from kadmctl.api.routes import delete, init, join
from kadmctl.modules.clusterfile import ClusterfileError
from kadmctl.modules.kubeadm import ClusterOperationError

load_dotenv()
logger = logging.getLogger("api")

app = FastAPI(title="kadmctl")
app.add_middleware(AuthMiddleware)


@app.exception_handler(ClusterOperationError)
async def cluster_operation_error_handler(request: Request, exc: ClusterOperationError):
    logger.error(f"{request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc), "host": exc.host, "stage": exc.stage})


@app.exception_handler(ClusterfileError)
async def clusterfile_error_handler(request: Request, exc: ClusterfileError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


app.include_router(init.router)
app.include_router(join.router)
app.include_router(delete.router)
