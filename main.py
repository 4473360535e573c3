import hmac
import logging
from typing import Optional

import pydantic
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from auth import CredentialStore
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from database import Base, SessionLocal, engine, session_scope
from errors import BudgetAppError, GENERIC_ERROR_MESSAGE
from forms import (
    is_checked,
    parse_amount,
    parse_category_id,
    parse_entry_date,
    year_choices,
)
from models import User
from schemas import BudgetIn
from services import AdminService, BudgetService, CategoryService
from session_gate import AuthRequired, SessionContext, SessionGate

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Tracker")
app.add_middleware(
    SessionMiddleware,
    secret_key=get_settings().session_secret,
    max_age=get_settings().session_max_age,
)
app.mount("/static", StaticFiles(directory="static"), name="static")
templates = Jinja2Templates(directory="templates")


def format_currency(cents: int) -> str:
    return f"{cents / 100:,.2f}".replace(",", " ").replace(".", ",")


templates.env.filters["currency"] = format_currency
templates.env.globals["csrf_token"] = generate_csrf_token


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_context(request: Request) -> SessionContext:
    return SessionContext(request.session)


def get_gate(db: Session = Depends(get_db)) -> SessionGate:
    return SessionGate(CredentialStore(db))


def require_user(
    ctx: SessionContext = Depends(get_session_context),
    gate: SessionGate = Depends(get_gate),
) -> int:
    return gate.require_authenticated(ctx)


def require_admin(
    ctx: SessionContext = Depends(get_session_context),
    gate: SessionGate = Depends(get_gate),
) -> int:
    return gate.require_admin(ctx)


@app.exception_handler(AuthRequired)
async def auth_required_handler(request: Request, exc: AuthRequired):
    return RedirectResponse(url="/", status_code=303)


@app.on_event("startup")
def startup_event():
    Base.metadata.create_all(bind=engine)
    with session_scope() as session:
        CategoryService(session).ensure_defaults()


def render(
    request: Request,
    template: str,
    context: dict[str, object],
    status_code: int = 200,
) -> HTMLResponse:
    session_ctx = SessionContext(request.session)
    ctx: dict[str, object] = {
        "current_user_id": session_ctx.user_id,
        "current_username": session_ctx.username,
        "is_admin": session_ctx.is_admin,
        "flash_error": session_ctx.pop_flash("error"),
        "flash_success": session_ctx.pop_flash("success"),
    }
    ctx.update(context)
    return templates.TemplateResponse(request, template, ctx, status_code=status_code)


def redirect(path: str) -> RedirectResponse:
    return RedirectResponse(url=path, status_code=303)


async def checked_form(request: Request, ctx: SessionContext):
    form = await request.form()
    if not validate_csrf_token(form.get("csrf_token"), ctx.user_id):
        raise HTTPException(status_code=400, detail="Ogiltig CSRF-token")
    return form


def budget_payload_from_form(form) -> BudgetIn:
    try:
        return BudgetIn(
            category_id=parse_category_id(form.get("category")),
            amount_cents=parse_amount(form.get("amount")),
            date=parse_entry_date(form.get("year"), form.get("month"), form.get("day")),
            is_public=is_checked(form.get("public")),
        )
    except pydantic.ValidationError as exc:
        raise BudgetAppError(GENERIC_ERROR_MESSAGE) from exc


def budget_form_context(db: Session, **extra: object) -> dict[str, object]:
    ctx: dict[str, object] = {
        "categories": CategoryService(db).list_all(),
        "years": year_choices(),
    }
    ctx.update(extra)
    return ctx


@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    return render(request, "home.html", {})


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request, ctx: SessionContext = Depends(get_session_context)):
    if ctx.is_authenticated:
        return redirect("/")
    return render(request, "user_login.html", {})


@app.post("/login")
async def login(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    gate: SessionGate = Depends(get_gate),
):
    form = await checked_form(request, ctx)
    result = gate.login(ctx, form.get("username", ""), form.get("password", ""))
    if result.success:
        return redirect("/")
    return render(request, "user_login.html", {"login_error": result.message})


@app.get("/register", response_class=HTMLResponse)
def register_page(
    request: Request, ctx: SessionContext = Depends(get_session_context)
):
    if ctx.is_authenticated:
        return redirect("/")
    return render(request, "user_register.html", {})


@app.post("/signup")
async def signup(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    form = await checked_form(request, ctx)
    username = form.get("username", "")
    password = form.get("password", "")
    if password != form.get("confirm_password", ""):
        return render(
            request, "user_register.html", {"signup_error": "Lösenorden matchar inte"}
        )

    result = CredentialStore(db).register(username, password)
    if not result.success:
        return render(request, "user_register.html", {"signup_error": result.message})

    user = db.get(User, result.value)
    ctx.set_identity(user)
    return redirect("/")


@app.get("/logout")
def logout(
    ctx: SessionContext = Depends(get_session_context),
    gate: SessionGate = Depends(get_gate),
):
    gate.logout(ctx)
    return redirect("/")


@app.get("/budgets", response_class=HTMLResponse)
def budgets_page(
    request: Request,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    result = BudgetService(db).list_for_owner(user_id)
    return render(
        request,
        "budget.html",
        budget_form_context(db, budgets=result.value or [], load_error=result.message),
    )


@app.get("/budgets/new", response_class=HTMLResponse)
def new_budget_page(
    request: Request,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    return render(request, "budget_form.html", budget_form_context(db, budget=None))


@app.post("/budgets")
async def create_budget(
    request: Request,
    user_id: int = Depends(require_user),
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    form = await checked_form(request, ctx)
    try:
        data = budget_payload_from_form(form)
    except BudgetAppError as exc:
        return render(
            request,
            "budget_form.html",
            budget_form_context(db, budget=None, form_error=exc.message),
            status_code=400,
        )
    result = BudgetService(db).create(user_id, data)
    if not result.success:
        ctx.flash("error", result.message)
    return redirect("/budgets")


@app.get("/budgets/{budget_id}/edit", response_class=HTMLResponse)
def edit_budget_page(
    budget_id: int,
    request: Request,
    user_id: int = Depends(require_user),
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    result = BudgetService(db).get(budget_id, user_id)
    if not result.success:
        ctx.flash("error", result.message)
        return redirect("/budgets")
    budget, is_public = result.value
    return render(
        request,
        "budget_form.html",
        budget_form_context(db, budget=budget, is_public=is_public),
    )


@app.post("/budgets/{budget_id}")
async def update_budget(
    budget_id: int,
    request: Request,
    user_id: int = Depends(require_user),
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    form = await checked_form(request, ctx)
    service = BudgetService(db)
    try:
        data = budget_payload_from_form(form)
    except BudgetAppError as exc:
        current = service.get(budget_id, user_id)
        if not current.success:
            ctx.flash("error", current.message)
            return redirect("/budgets")
        budget, is_public = current.value
        return render(
            request,
            "budget_form.html",
            budget_form_context(
                db, budget=budget, is_public=is_public, form_error=exc.message
            ),
            status_code=400,
        )
    result = service.update(budget_id, user_id, data)
    if not result.success:
        ctx.flash("error", result.message)
    return redirect("/budgets")


@app.post("/budgets/{budget_id}/delete")
async def delete_budget(
    budget_id: int,
    request: Request,
    user_id: int = Depends(require_user),
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    await checked_form(request, ctx)
    result = BudgetService(db).delete(budget_id, user_id)
    if not result.success:
        ctx.flash("error", result.message)
    return redirect("/budgets")


@app.post("/toggle_visibility/{budget_id}")
async def toggle_visibility(
    budget_id: int,
    request: Request,
    user_id: int = Depends(require_user),
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    await checked_form(request, ctx)
    result = BudgetService(db).toggle_visibility(budget_id, user_id)
    if not result.success:
        ctx.flash("error", result.message)
    return redirect("/budgets")


@app.get("/public_budgets", response_class=HTMLResponse)
def public_budgets_page(
    request: Request,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    result = BudgetService(db).list_all_public()
    return render(
        request,
        "public_budgets.html",
        {"public_budgets": result.value or [], "load_error": result.message},
    )


@app.get("/admin", response_class=HTMLResponse)
def admin_login_page(
    request: Request, ctx: SessionContext = Depends(get_session_context)
):
    if ctx.is_authenticated and not ctx.is_admin:
        return redirect("/")
    return render(request, "admin_login.html", {})


@app.post("/admin/login")
async def admin_login(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    gate: SessionGate = Depends(get_gate),
):
    form = await checked_form(request, ctx)
    result = gate.admin_login(ctx, form.get("username", ""), form.get("password", ""))
    if result.success:
        return redirect("/admin/dashboard")
    return render(request, "admin_login.html", {"login_error": result.message})


@app.get("/admin/dashboard", response_class=HTMLResponse)
def admin_dashboard(
    request: Request,
    admin_id: int = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = AdminService(db).list_users()
    return render(
        request,
        "admin_dashboard.html",
        {"users": result.value or [], "load_error": result.message},
    )


@app.post("/admin/users/{user_id}/delete")
async def admin_delete_user(
    user_id: int,
    request: Request,
    admin_id: int = Depends(require_admin),
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    await checked_form(request, ctx)
    result = AdminService(db).delete_user(user_id, admin_id)
    if result.success:
        ctx.flash("success", "Användarkontot har tagits bort")
    else:
        ctx.flash("error", result.message)
    return redirect("/admin/dashboard")


def setup_key_matches(candidate: Optional[str]) -> bool:
    expected = get_settings().admin_setup_key
    if not expected or not candidate:
        return False
    return hmac.compare_digest(candidate.encode(), expected.encode())


@app.get("/setup/admin", response_class=HTMLResponse)
def create_admin_page(request: Request):
    return render(request, "create_admin.html", {})


@app.post("/setup/admin")
async def create_admin(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    form = await checked_form(request, ctx)
    if not setup_key_matches(form.get("admin_key")):
        logger.warning("admin_setup_rejected: reason=bad_key")
        return render(
            request, "create_admin.html", {"error": "Ogiltig installationsnyckel"}
        )
    username = form.get("username", "")
    password = form.get("password", "")
    result = CredentialStore(db).register_admin(username, password)
    if not result.success:
        return render(request, "create_admin.html", {"error": result.message})
    return render(
        request, "create_admin.html", {"success": "Administratörskontot har skapats"}
    )
