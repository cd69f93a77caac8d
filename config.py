import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API Ayarları
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    # Eski sürümdeki paylaşılan çerez bayrağının yerine her değişiklik isteğinde kontrol edilir
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Veritabanı Ayarları
    database_file: Optional[str] = os.getenv("LIBRARY_DB_FILE")
    database_timeout: float = float(os.getenv("DATABASE_TIMEOUT", "10"))

    # Kimlik kodu ayarları
    member_code_prefix: str = os.getenv("MEMBER_CODE_PREFIX", "AIPSMEM")
    member_code_width: int = int(os.getenv("MEMBER_CODE_WIDTH", "4"))
    book_code_prefix: str = os.getenv("BOOK_CODE_PREFIX", "AIPSLIB")
    book_code_width: int = int(os.getenv("BOOK_CODE_WIDTH", "6"))

    # Uygulama Ayarları
    app_name: str = os.getenv("APP_NAME", "Kütüphane Katalog Sistemi")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Sayfalama Ayarları
    books_page_size: int = int(os.getenv("BOOKS_PAGE_SIZE", "10"))
    member_search_limit: int = int(os.getenv("MEMBER_SEARCH_LIMIT", "200"))


settings = Settings()
