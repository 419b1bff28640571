from typing import List

from fastapi import APIRouter
from pydantic import BaseModel

from kadmctl.modules import cluster

router = APIRouter()


class JoinRequest(BaseModel):
    clusterfile: str
    masters: List[str] = []
    nodes: List[str] = []


@router.post("/join")
def run_join(req: JoinRequest):
    result = cluster.join_cluster(req.clusterfile, masters=req.masters, nodes=req.nodes)
    return {
        "status": "joined",
        "masters": result.spec.masters,
        "nodes": result.spec.nodes,
    }
