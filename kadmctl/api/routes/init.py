from fastapi import APIRouter
from pydantic import BaseModel

from kadmctl.modules import cluster

router = APIRouter()


class InitRequest(BaseModel):
    clusterfile: str


@router.post("/init")
def run_init(req: InitRequest):
    result = cluster.init_cluster(req.clusterfile)
    return {
        "status": "initialized",
        "masters": result.spec.masters,
        "nodes": result.spec.nodes,
    }
