from fastapi import APIRouter, Depends

from shelfswap.schemas.book import GenreStatsResponse, StatsResponse
from shelfswap.services.book_service import BookStore
from shelfswap.utils.deps import get_book_store

router = APIRouter(tags=["分类与统计"])


@router.get("/genres", response_model=list[str], summary="全部分类")
async def list_genres(store: BookStore = Depends(get_book_store)):
    """去重后的非空分类，按字母排序"""
    return await store.get_genres()


@router.get("/genres/popular", response_model=list[GenreStatsResponse], summary="热门分类")
async def popular_genres(store: BookStore = Depends(get_book_store)):
    stats = await store.get_popular_genres()
    return [GenreStatsResponse.model_validate(s) for s in stats]


@router.get("/stats", response_model=StatsResponse, summary="站点统计")
async def catalog_stats(store: BookStore = Depends(get_book_store)):
    return StatsResponse.model_validate(await store.get_stats())
