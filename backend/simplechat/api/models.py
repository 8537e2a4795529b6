from fastapi import APIRouter, HTTPException

from simplechat.services.models import get_model, get_models

router = APIRouter()


@router.get("/")
async def list_models():
    return [m.to_dict() for m in get_models()]


@router.get("/{model_id:path}")
async def get_model_info(model_id: str):
    model = get_model(model_id)
    if not model:
        raise HTTPException(status_code=404, detail="Model not found")
    return model.to_dict()
