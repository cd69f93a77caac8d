import logging
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Depends, Security, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from book import Book
from config import settings
from database import StoreUnavailableError, get_db_connection
from library import DuplicateCodeError, LedgerOutcome, Library, MemberValidationError
from member import Member

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

library = Library()

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)

# 1KB'den büyük yanıtlar için GZip sıkıştırmasını etkinleştir
app.add_middleware(GZipMiddleware, minimum_size=1000)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    # Stok sayıları sürekli değişir; istemci tarafında önbelleğe alma
    if request.url.path.startswith("/books"):
        response.headers["Cache-Control"] = "no-store"
    return response

# --- Güvenlik ---
api_key_header = APIKeyHeader(name="X-API-Key")

def get_api_key(api_key: str = Security(api_key_header)):
    """API anahtarını doğrulamak için bağımlılık."""
    if api_key == settings.api_key:
        return api_key
    else:
        raise HTTPException(
            status_code=403,
            detail="Could not validate credentials",
        )

# --- Hata işleyicileri ---
@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    """Geçici veritabanı hataları: istemci daha sonra yeniden deneyebilir."""
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Store temporarily unavailable."})

# --- Modeller ---
class BookModel(BaseModel):
    id: str
    code: str
    title: str
    author: str
    category: str = ""
    year: int | None = None
    total_copies: int
    available_copies: int
    shelf_no: str = ""
    shelf: str = ""
    borrowers: List[str] = []
    created_at: str | None = None
    updated_at: str | None = None

class BookCreateModel(BaseModel):
    code: str | None = Field(default=None, description="Boş bırakılırsa otomatik üretilir")
    title: str = ""
    author: str = ""
    category: str | None = None
    year: int | None = None
    total_copies: int = Field(default=0, ge=0)
    available_copies: int | None = Field(default=None, ge=0, description="Boşsa toplam kopya sayısı kullanılır")
    shelf_no: str | None = None
    shelf: str | None = None

class BookUpdateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    category: str | None = None
    year: int | None = None
    total_copies: int | None = Field(default=None, ge=0)
    available_copies: int | None = Field(default=None, ge=0)
    shelf_no: str | None = None
    shelf: str | None = None

class BookLookupModel(BaseModel):
    id: str
    code: str
    title: str
    author: str
    category: str
    year: int | None = None
    shelf_no: str
    shelf: str
    total: int
    available: int
    can_issue: bool

class PaginatedBooksResponse(BaseModel):
    items: List[BookModel]
    total: int
    page: int
    per_page: int
    total_pages: int

class LedgerRequest(BaseModel):
    member: str | None = Field(default=None, description="Üye kodu veya kimliği (isteğe bağlı)")

class LedgerResponse(BaseModel):
    status: str
    message: str
    book: BookLookupModel

class MemberCreateModel(BaseModel):
    name: str
    phone: str | None = None
    email: str | None = None
    member_type: str
    gender: str

class MemberModel(BaseModel):
    id: str
    code: str
    name: str
    phone: str | None = None
    email: str | None = None
    member_type: str
    gender: str
    active: bool
    created_at: str | None = None

class MemberCreatedResponse(BaseModel):
    message: str
    member: MemberModel

class StatsModel(BaseModel):
    total_books: int
    total_copies: int
    available_copies: int
    total_members: int

# --- Yardımcı Fonksiyonlar ---
def _book_model(book: Book) -> BookModel:
    return BookModel(**book.to_dict())

def _member_model(member: Member) -> MemberModel:
    return MemberModel(**member.to_dict())

def _ledger_response(outcome: LedgerOutcome, token: str) -> LedgerResponse:
    """Bir defter sonucunu HTTP yanıtına çevir."""
    if outcome is LedgerOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=outcome.message)
    if not outcome.ok:
        raise HTTPException(status_code=409, detail=outcome.message)
    projection = library.lookup_book(token)
    if projection is None:
        # Silindi; işlem yine de tamamlandı
        raise HTTPException(status_code=404, detail=LedgerOutcome.NOT_FOUND.message)
    return LedgerResponse(status=outcome.value, message=outcome.message, book=BookLookupModel(**projection))

# --- Sağlık Kontrolü ---
@app.get("/health")
def health():
    """Hafif sağlık uç noktası: hızlı bir veritabanı bağlantı denemesi yapar."""
    db_ok = True
    try:
        conn = get_db_connection(library.db_file)
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
    except (StoreUnavailableError, OSError) as exc:
        logger.warning("Health check could not reach the store: %s", exc)
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "db": db_ok,
        "version": settings.app_version,
    }

@app.get("/stats", response_model=StatsModel)
def get_library_stats():
    """Kütüphane hakkında temel istatistikleri al."""
    return StatsModel(**library.get_statistics())

# --- Kitaplar ---
@app.get("/books", response_model=PaginatedBooksResponse)
def get_books(
    title: Optional[str] = Query(None, description="Başlıkta arama (büyük/küçük harf duyarsız)"),
    author: Optional[str] = Query(None, description="Yazarda arama"),
    page: int = Query(1, description="Sayfa numarası; aralık dışıysa sınırlandırılır"),
    per_page: Optional[int] = Query(None, ge=1, le=100, description="Sayfa başına öğe"),
):
    """Kitapları oluşturulma sırasına göre sayfalandırılmış olarak listele."""
    result = library.list_books(title=title, author=author, page=page, per_page=per_page)
    return PaginatedBooksResponse(
        items=[_book_model(b) for b in result["items"]],
        total=result["total"],
        page=result["page"],
        per_page=result["per_page"],
        total_pages=result["total_pages"],
    )

@app.get("/books/lookup/{token}", response_model=BookLookupModel)
def lookup_book(token: str):
    """Kimlik, kod veya numaraya göre bir kitabı çöz (modal/otomatik tamamlama için)."""
    projection = library.lookup_book(token)
    if projection is None:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookLookupModel(**projection)

@app.post("/books", response_model=BookModel, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel):
    """Yeni bir kitap ekle; kod verilmezse sıradaki AIPSLIB kodu atanır."""
    book = Book(
        code=payload.code,
        title=payload.title,
        author=payload.author,
        category=payload.category,
        year=payload.year,
        total_copies=payload.total_copies,
        available_copies=payload.available_copies,
        shelf_no=payload.shelf_no,
        shelf=payload.shelf,
    )
    try:
        return _book_model(library.add_book(book))
    except DuplicateCodeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.put("/books/{token}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(token: str, update: BookUpdateModel):
    """Bir kitabı kısmen güncelle; mevcut kopya sayısı yeni toplam içinde tutulur."""
    try:
        book = library.update_book(token, **update.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not book:
        raise HTTPException(status_code=404, detail="Book not found.")
    return _book_model(book)

@app.delete("/books/{token}", dependencies=[Depends(get_api_key)])
def delete_book(token: str):
    """Bir kitabı kütüphaneden sil."""
    if not library.remove_book(token):
        raise HTTPException(status_code=404, detail="Book not found.")
    return {"message": "Book removed."}

@app.post("/books/{token}/issue", response_model=LedgerResponse, dependencies=[Depends(get_api_key)])
def issue_book(token: str, payload: Optional[LedgerRequest] = None):
    """Bir kopya ödünç ver."""
    member = payload.member if payload else None
    return _ledger_response(library.issue_book(token, member), token)

@app.post("/books/{token}/return", response_model=LedgerResponse, dependencies=[Depends(get_api_key)])
def return_book(token: str, payload: Optional[LedgerRequest] = None):
    """Bir kopyayı iade al."""
    member = payload.member if payload else None
    return _ledger_response(library.return_book(token, member), token)

# --- Üyeler ---
@app.post("/members", response_model=MemberCreatedResponse, dependencies=[Depends(get_api_key)])
def add_member(payload: MemberCreateModel):
    """Yeni üye kaydet; kod AIPSMEM serisinden atanır."""
    try:
        member = library.add_member(
            name=payload.name,
            member_type=payload.member_type,
            gender=payload.gender,
            phone=payload.phone,
            email=payload.email,
        )
    except MemberValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateCodeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return MemberCreatedResponse(
        message=f"Member added: {member.name} ({member.code})",
        member=_member_model(member),
    )

@app.get("/members", response_model=List[MemberModel])
def list_members(
    q: Optional[str] = Query(None, description="Ad, kod, e-posta veya telefonda arama"),
    member_type: Optional[str] = Query(None, alias="type", description="student | teacher | staff | foreigner"),
    gender: Optional[str] = Query(None, description="male | female | other"),
):
    """Açılır listeler ve arama için üyeleri listele."""
    return [_member_model(m) for m in library.list_members(q=q, member_type=member_type, gender=gender)]

@app.get("/members/{ref}", response_model=MemberModel)
def get_member(ref: str):
    member = library.find_member(ref)
    if not member:
        raise HTTPException(status_code=404, detail="Member not found.")
    return _member_model(member)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
