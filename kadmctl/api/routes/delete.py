from typing import List

from fastapi import APIRouter
from pydantic import BaseModel

from kadmctl.modules import cluster

router = APIRouter()


class DeleteRequest(BaseModel):
    clusterfile: str
    masters: List[str] = []
    nodes: List[str] = []


@router.post("/delete")
def run_delete(req: DeleteRequest):
    failures = cluster.delete_from_cluster(req.clusterfile, masters=req.masters, nodes=req.nodes)
    return {
        "status": "deleted",
        "partial_failures": {host: str(error) for host, error in failures.items()},
    }
