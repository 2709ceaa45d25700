from typing import List

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from ..services.bookmarks import bookmarks_to_csv, csv_to_bookmarks, example_csv
from ..types.events import Bookmark

router = APIRouter(prefix="/api/bookmarks")


class BookmarkExportRequest(BaseModel):
    bookmarks: List[Bookmark] = Field(default_factory=list)


class BookmarkImportRequest(BaseModel):
    csv: str = Field(..., description="CSV document with a header row")


class BookmarkImportResponse(BaseModel):
    bookmarks: List[Bookmark]
    imported: int


@router.post("/export", response_class=PlainTextResponse)
async def export_bookmarks(request: BookmarkExportRequest) -> PlainTextResponse:
    return PlainTextResponse(
        bookmarks_to_csv(request.bookmarks),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="bookmarks.csv"'},
    )


@router.post("/import", response_model=BookmarkImportResponse)
async def import_bookmarks(request: BookmarkImportRequest) -> BookmarkImportResponse:
    bookmarks = csv_to_bookmarks(request.csv)
    return BookmarkImportResponse(bookmarks=bookmarks, imported=len(bookmarks))


@router.get("/example", response_class=PlainTextResponse)
async def example_bookmarks() -> PlainTextResponse:
    return PlainTextResponse(example_csv(), media_type="text/csv")
