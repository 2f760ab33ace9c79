import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from dataset_loader import CURRENT_VERSION, Meta
from errors import (
    InvalidInputError,
    LoadFailureError,
    MalformedAddressError,
    UnsupportedVersionError,
)
from tree_cache import TreeCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/datasets")


def get_tree_cache(request: Request) -> TreeCache:
    return request.app.state.tree_cache


def load_dataset(cache: TreeCache, dataset: str) -> Meta:
    try:
        return cache.get_or_load(dataset)
    except MalformedAddressError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LoadFailureError as e:
        logger.error("❌ %s", e)
        raise HTTPException(status_code=404, detail="Dataset no encontrado")
    except UnsupportedVersionError as e:
        logger.error("❌ Dataset %r: %s", dataset, e)
        raise HTTPException(status_code=422, detail=str(e))


def parse_matrix(matrix: str) -> List[float]:
    try:
        return [float(v) for v in matrix.split(",")]
    except ValueError:
        raise HTTPException(status_code=400, detail="Matrix must be comma separated numbers")


# ─────────────────────────────────────────────
# METADATA
# ─────────────────────────────────────────────

@router.get("/{dataset}/meta")
def get_meta(dataset: str, cache: TreeCache = Depends(get_tree_cache)):
    meta = load_dataset(cache, dataset)
    return {
        "version": CURRENT_VERSION,
        "bounding_rect": {
            "min_x": meta.bounding_rect.min_x,
            "min_y": meta.bounding_rect.min_y,
            "edge_length": meta.bounding_rect.edge_length,
        },
        "tile_size": meta.tile_size,
        "deepest_level": meta.deepest_level,
    }


# ─────────────────────────────────────────────
# NODE QUERY
# ─────────────────────────────────────────────

@router.get("/{dataset}/nodes_for_level")
def get_nodes_for_level(
    dataset: str,
    level: int = Query(..., ge=0),
    matrix: str = Query(..., description="16 comma separated entries, column-major"),
    cache: TreeCache = Depends(get_tree_cache),
):
    entries = parse_matrix(matrix)
    meta = load_dataset(cache, dataset)

    try:
        nodes = meta.get_nodes_for_level(level, entries)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return [node.to_dict() for node in nodes]
