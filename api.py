import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Depends, Security, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, ConfigDict, Field

from accounts import AccountService
from book import Book
from checkout import Checkout
from circulation import CirculationService
from config import settings
from database import get_db_connection, initialize_database
from library import Library, UnprocessableRequestError
from user import User

logger = logging.getLogger(__name__)

BOOKS_URL = "/api/profile/books"
CHECKOUT_URL = "/api/profile/checkout"

library = Library()
accounts = AccountService()
circulation = CirculationService(library, accounts)


@asynccontextmanager
async def lifespan(app: FastAPI):
    initialize_database(seed_file=settings.seed_file)
    logger.info(f"{settings.app_name} {settings.app_version} started")
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
basic_scheme = HTTPBasic()


def get_current_user(credentials: HTTPBasicCredentials = Security(basic_scheme)) -> User:
    """Dependency resolving HTTP Basic credentials (email/password) to a user."""
    user = accounts.authenticate(credentials.username, credentials.password)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user


# --- Errors ---
@app.exception_handler(UnprocessableRequestError)
async def unprocessable_request_handler(request: Request, exc: UnprocessableRequestError):
    return JSONResponse(status_code=422, content={"detail": exc.reason})


# --- Models ---
class BookModel(BaseModel):
    id: int
    author: str
    title: str
    location: str | None = None
    amount: int

    @classmethod
    def from_book(cls, book: Book) -> "BookModel":
        return cls(id=book.id, author=book.author, title=book.title, location=book.location, amount=book.amount)


class CheckoutBookModel(BaseModel):
    author: str
    title: str


class CheckoutModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    checkout_date_time: datetime = Field(alias="checkoutDateTime")
    book: CheckoutBookModel

    @classmethod
    def from_checkout(cls, checkout: Checkout) -> "CheckoutModel":
        return cls(
            id=checkout.id,
            checkout_date_time=checkout.checkout_date_time,
            book=CheckoutBookModel(author=checkout.book.author, title=checkout.book.title),
        )


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health endpoint with a quick database round trip."""
    db_ok = True
    try:
        conn = get_db_connection()
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
    except Exception:
        logger.exception("Health check database probe failed")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "version": settings.app_version,
    }


# --- Books ---
@app.get(f"{BOOKS_URL}/search", response_model=List[BookModel], tags=["profile-book"])
def search_books(
    author: Optional[str] = Query(default=None, description="Author name"),
    text: Optional[str] = Query(default=None, description="Text substring in the book's title (ignoring case)"),
    user: User = Depends(get_current_user),
):
    """Search for books by author or by a substring of the title."""
    logger.info(f"search_books() author={author!r} text={text!r}")
    return [BookModel.from_book(b) for b in library.search(author=author, text=text)]


@app.get(f"{BOOKS_URL}/{{book_id}}", response_model=BookModel, tags=["profile-book"])
def get_book(book_id: int, user: User = Depends(get_current_user)):
    """Get a single book by id."""
    logger.info(f"get_book() id={book_id}")
    return BookModel.from_book(library.get_by_id(book_id))


# --- Checkouts ---
@app.get(CHECKOUT_URL, response_model=List[CheckoutModel], tags=["profile-checkout"])
def list_checkouts(user: User = Depends(get_current_user)):
    """Books currently borrowed by the authenticated user."""
    logger.info(f"list_checkouts() user={user.id}")
    return [CheckoutModel.from_checkout(ch) for ch in circulation.list_active(user)]


@app.post(CHECKOUT_URL, response_model=CheckoutModel, status_code=201, tags=["profile-checkout"])
def create_checkout(
    request: Request,
    response: Response,
    book_id: int = Query(..., alias="id", description="Id of the book to checkout. Refused once the borrowing or violation limit is exceeded"),
    user: User = Depends(get_current_user),
):
    """Borrow a book for the authenticated user."""
    logger.info(f"create_checkout() user={user.id} book={book_id}")
    created = circulation.create(book_id, user)
    response.headers["Location"] = f"{str(request.base_url).rstrip('/')}{CHECKOUT_URL}/{created.id}"
    return CheckoutModel.from_checkout(created)


@app.put(CHECKOUT_URL, status_code=204, tags=["profile-checkout"])
def checkin(
    checkout_id: int = Query(..., alias="id", description="Checkout id"),
    user: User = Depends(get_current_user),
):
    """Return (checkin) a book borrowed by the authenticated user."""
    logger.info(f"checkin() user={user.id} checkout={checkout_id}")
    circulation.checkin(checkout_id, user)
    return Response(status_code=204)


@app.get("/")
def read_root():
    return {"name": settings.app_name, "version": settings.app_version, "docs": "/docs"}
