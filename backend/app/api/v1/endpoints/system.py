from fastapi import APIRouter

router = APIRouter(tags=["System"])


@router.get("/health")
async def health():
    """存活探针（不访问数据库 / 外部依赖）"""
    return {"status": "UP"}
